"""Client for the registry HTTP API v2.

`RegistryClient` is the interface the mirroring logic depends on: fetch the
descriptor of a reference (narrowed to one platform on request) and push a
descriptor, with everything it references, to another reference.
`RemoteRegistryClient` implements it with `requests`.
"""

__all__ = [
    "RegistryClient",
    "RemoteRegistryClient",
]

import hashlib
import json
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import IO, Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlencode, urljoin

import requests

from cfn_container_image_provider.common.deadline import Deadline
from cfn_container_image_provider.exceptions import Cancelled, PlatformNotFound, RegistryError
from cfn_container_image_provider.registry.auth import (
    authorization_header,
    parse_challenge,
    pull_scope,
    push_scope,
)
from cfn_container_image_provider.registry.model import (
    FOREIGN_LAYER_MEDIA_TYPES,
    MANIFEST_MEDIA_TYPES,
    MEDIA_OCI_INDEX_V1,
    MEDIA_OCI_MANIFEST_V1,
    Credential,
    Descriptor,
)
from cfn_container_image_provider.registry.platform import Platform
from cfn_container_image_provider.registry.reference import DEFAULT_REGISTRY, ImageReference


DOCKER_HUB_API_HOST = "registry-1.docker.io"
LOCAL_REGISTRY_HOSTS = ("localhost", "127.0.0.1")
BLOB_CHUNK_SIZE = 1024 * 1024


class RegistryClient(ABC):
    @abstractmethod
    def fetch_descriptor(
        self,
        reference: ImageReference,
        platform: Optional[Platform] = None,
        credential: Optional[Credential] = None,
    ) -> Descriptor:
        """Fetch the manifest a reference points to.

        Args:
            reference (ImageReference): Reference to fetch. A digest takes precedence over a tag.
            platform (Optional[Platform]): If given and the reference points to an index,
                fetch the first entry matching this platform instead.
            credential (Optional[Credential]): Credential for the source registry,
                None for anonymous access.

        Raises:
            PlatformNotFound: If no index entry matches the platform.
            RegistryError: If the registry call fails.
            Cancelled: If the invocation deadline passed.
        """
        raise NotImplementedError()  # pragma: no cover

    @abstractmethod
    def push_descriptor(
        self, reference: ImageReference, descriptor: Descriptor, credential: Credential
    ) -> None:
        """Push a descriptor, with all child manifests and blobs, to a reference.

        Raises:
            RegistryError: If a registry call fails.
            Cancelled: If the invocation deadline passed.
        """
        raise NotImplementedError()  # pragma: no cover


class RemoteRegistryClient(RegistryClient):
    """Registry client speaking the registry HTTP API v2.

    Authorizations are kept per registry and scope for the lifetime of the
    client, which is meant to be one invocation.

    Args:
        deadline (Optional[Deadline]): Cancellation token bounding every call.
        request_timeout (float): Upper bound in seconds for a single call.
        spool_max_size (int): Bytes of a blob held in memory before spooling to disk.
        logger (Optional[logging.Logger]): Receives the transfer progress events.
        session (Optional[requests.Session]): HTTP session, one is created if omitted.
    """

    def __init__(
        self,
        deadline: Optional[Deadline] = None,
        request_timeout: float = 60.0,
        spool_max_size: int = 64 * 1024 * 1024,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.deadline = deadline or Deadline()
        self.request_timeout = request_timeout
        self.spool_max_size = spool_max_size
        self.log = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        self._credentials: Dict[str, Optional[Credential]] = {}
        self._authorizations: Dict[Tuple[str, str], str] = {}

    def __enter__(self) -> "RemoteRegistryClient":
        return self

    def __exit__(self, *args, **kwargs):
        self.close()

    def close(self):
        self.session.close()

    # --------------------------------------------------------------------
    # RegistryClient
    # --------------------------------------------------------------------

    def fetch_descriptor(
        self,
        reference: ImageReference,
        platform: Optional[Platform] = None,
        credential: Optional[Credential] = None,
    ) -> Descriptor:
        self._set_credential(reference.registry, credential)
        descriptor = self._get_manifest(reference)
        if platform is None or not descriptor.is_index:
            return descriptor

        for entry in descriptor.manifests:
            if entry.platform and platform.matches(entry.platform):
                self.log.info(
                    f"Resolved platform {platform} of {reference} to {entry.digest}",
                    extra={"reference": str(reference), "digest": entry.digest},
                )
                child = self._get_manifest(reference.by_digest(entry.digest))
                return replace(child, platform=entry.platform)

        raise PlatformNotFound(
            f"no image for platform {platform} in {reference}, "
            f"available platforms: {', '.join(descriptor.platforms)}"
        )

    def push_descriptor(
        self, reference: ImageReference, descriptor: Descriptor, credential: Credential
    ) -> None:
        self._set_credential(reference.registry, credential)
        source = descriptor.reference
        if descriptor.is_index:
            for entry in descriptor.manifests:
                self._copy_manifest(source.by_digest(entry.digest), reference.by_digest(entry.digest))
        else:
            self._copy_blobs(source, reference, descriptor.manifest)
        self._put_manifest(reference, descriptor)

    # --------------------------------------------------------------------
    # Manifests
    # --------------------------------------------------------------------

    def _get_manifest(self, reference: ImageReference) -> Descriptor:
        url = self._url(reference, f"manifests/{reference.identifier}")
        response = self._request(
            "GET",
            reference,
            url,
            pull_scope(reference.repository),
            headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
        )
        self._check(response, {200}, f"fetch manifest {reference}")

        content = response.content
        digest = f"sha256:{hashlib.sha256(content).hexdigest()}"
        if reference.digest.startswith("sha256:") and reference.digest != digest:
            raise RegistryError(f"manifest of {reference} has digest {digest}")
        try:
            manifest = json.loads(content)
        except ValueError as e:
            raise RegistryError(f"manifest of {reference} is not valid JSON: {e}") from e
        if not isinstance(manifest, dict):
            raise RegistryError(f"manifest of {reference} is not a JSON object")
        return Descriptor(
            reference=reference,
            media_type=_media_type(response, manifest),
            digest=digest,
            content=content,
        )

    def _manifest_exists(self, reference: ImageReference) -> bool:
        url = self._url(reference, f"manifests/{reference.identifier}")
        response = self._request(
            "HEAD",
            reference,
            url,
            push_scope(reference.repository),
            headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
        )
        if response.status_code == 404:
            return False
        self._check(response, {200}, f"check manifest {reference}")
        return True

    def _put_manifest(self, reference: ImageReference, descriptor: Descriptor):
        url = self._url(reference, f"manifests/{reference.identifier}")
        response = self._request(
            "PUT",
            reference,
            url,
            push_scope(reference.repository),
            data=descriptor.content,
            headers={"Content-Type": descriptor.media_type},
        )
        self._check(response, {200, 201, 202}, f"push manifest {reference}")
        self.log.info(
            f"Pushed manifest {descriptor.digest} to {reference}",
            extra={"reference": str(reference), "digest": descriptor.digest},
        )

    def _copy_manifest(self, source: ImageReference, target: ImageReference):
        if self._manifest_exists(target):
            self.log.info(
                f"Manifest {target.digest} already present in {target.name}",
                extra={"reference": str(target), "digest": target.digest},
            )
            return
        descriptor = self._get_manifest(source)
        if descriptor.is_index:
            for entry in descriptor.manifests:
                self._copy_manifest(source.by_digest(entry.digest), target.by_digest(entry.digest))
        else:
            self._copy_blobs(source, target, descriptor.manifest)
        self._put_manifest(target, descriptor)

    # --------------------------------------------------------------------
    # Blobs
    # --------------------------------------------------------------------

    def _copy_blobs(self, source: ImageReference, target: ImageReference, manifest: Dict[str, Any]):
        for blob in _referenced_blobs(manifest):
            if blob.get("mediaType") in FOREIGN_LAYER_MEDIA_TYPES:
                self.log.info(
                    f"Skipping non-distributable layer {blob['digest']}",
                    extra={"reference": str(source), "digest": blob["digest"]},
                )
                continue
            self._copy_blob(source, target, blob["digest"])

    def _copy_blob(self, source: ImageReference, target: ImageReference, digest: str):
        if self._blob_exists(target, digest):
            self.log.debug(
                f"Blob {digest} already present in {target.name}",
                extra={"reference": str(target), "digest": digest},
            )
            return
        if source.registry == target.registry and self._mount_blob(source, target, digest):
            self.log.info(
                f"Mounted blob {digest} from {source.name}",
                extra={"reference": str(target), "digest": digest},
            )
            return

        with self._download_blob(source, digest) as blob:
            size = self._upload_blob(target, digest, blob)
        self.log.info(
            f"Copied blob {digest} ({size} bytes) from {source.name} to {target.name}",
            extra={"reference": str(target), "digest": digest, "size": size},
        )

    def _blob_exists(self, reference: ImageReference, digest: str) -> bool:
        url = self._url(reference, f"blobs/{digest}")
        response = self._request("HEAD", reference, url, push_scope(reference.repository))
        if response.status_code == 404:
            return False
        self._check(response, {200}, f"check blob {digest} in {reference.name}")
        return True

    def _mount_blob(self, source: ImageReference, target: ImageReference, digest: str) -> bool:
        query = urlencode({"mount": digest, "from": source.repository})
        url = self._url(target, f"blobs/uploads/?{query}")
        response = self._request(
            "POST", target, url, push_scope(target.repository), headers={"Content-Length": "0"}
        )
        return response.status_code == 201

    def _download_blob(self, reference: ImageReference, digest: str) -> IO[bytes]:
        url = self._url(reference, f"blobs/{digest}")
        response = self._request(
            "GET", reference, url, pull_scope(reference.repository), stream=True
        )
        self._check(response, {200}, f"fetch blob {digest} from {reference.name}")

        spool = tempfile.SpooledTemporaryFile(max_size=self.spool_max_size)
        hasher = hashlib.sha256()
        operation = f"download of blob {digest}"
        try:
            with response:
                for chunk in response.iter_content(chunk_size=BLOB_CHUNK_SIZE):
                    self.deadline.check(operation)
                    hasher.update(chunk)
                    spool.write(chunk)
        except requests.RequestException as e:
            spool.close()
            raise self._request_failure(operation, e)
        except Cancelled:
            spool.close()
            raise

        actual = f"sha256:{hasher.hexdigest()}"
        if digest.startswith("sha256:") and actual != digest:
            spool.close()
            raise RegistryError(f"blob {digest} from {reference.name} has digest {actual}")
        spool.seek(0)
        return spool

    def _upload_blob(self, reference: ImageReference, digest: str, blob: IO[bytes]) -> int:
        start_url = self._url(reference, "blobs/uploads/")
        scope = push_scope(reference.repository)
        response = self._request("POST", reference, start_url, scope, headers={"Content-Length": "0"})
        self._check(response, {202}, f"start upload of blob {digest} to {reference.name}")

        if not response.headers.get("Location"):
            raise RegistryError(
                f"start upload of blob {digest} to {reference.name} returned no upload location"
            )
        location = urljoin(start_url, response.headers["Location"])
        separator = "&" if "?" in location else "?"
        upload_url = f"{location}{separator}{urlencode({'digest': digest})}"

        blob.seek(0, 2)
        size = blob.tell()
        blob.seek(0)
        response = self._request(
            "PUT",
            reference,
            upload_url,
            scope,
            data=blob,
            headers={"Content-Type": "application/octet-stream", "Content-Length": str(size)},
        )
        self._check(response, {201}, f"upload blob {digest} to {reference.name}")
        return size

    # --------------------------------------------------------------------
    # HTTP
    # --------------------------------------------------------------------

    def _set_credential(self, registry: str, credential: Optional[Credential]):
        if credential is not None or registry not in self._credentials:
            self._credentials[registry] = credential

    def _url(self, reference: ImageReference, path: str) -> str:
        host = DOCKER_HUB_API_HOST if reference.registry == DEFAULT_REGISTRY else reference.registry
        scheme = "http" if host.split(":")[0] in LOCAL_REGISTRY_HOSTS else "https"
        return f"{scheme}://{host}/v2/{reference.repository}/{path}"

    def _request(
        self, method: str, reference: ImageReference, url: str, scope: str, **kwargs
    ) -> requests.Response:
        """Perform a request, answering one authentication challenge if needed."""
        operation = f"{method} {url}"
        key = (reference.registry, scope)
        headers = kwargs.pop("headers", None) or {}
        data = kwargs.get("data")

        response = self._send(method, url, operation, key, headers, **kwargs)
        challenge = response.headers.get("WWW-Authenticate")
        if response.status_code != 401 or not challenge:
            return response

        response.close()
        try:
            self._authorizations[key] = authorization_header(
                self.session,
                parse_challenge(challenge),
                scope,
                self._credentials.get(reference.registry),
                timeout=self.deadline.timeout(self.request_timeout, operation),
            )
        except requests.RequestException as e:
            raise self._request_failure(operation, e)
        if hasattr(data, "seek"):
            data.seek(0)
        return self._send(method, url, operation, key, headers, **kwargs)

    def _send(
        self,
        method: str,
        url: str,
        operation: str,
        key: Tuple[str, str],
        headers: Dict[str, str],
        **kwargs,
    ) -> requests.Response:
        headers = dict(headers)
        if key in self._authorizations:
            headers["Authorization"] = self._authorizations[key]
        timeout = self.deadline.timeout(self.request_timeout, operation)
        try:
            return self.session.request(method, url, headers=headers, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            raise self._request_failure(operation, e)

    def _request_failure(self, operation: str, error: Exception) -> Exception:
        if self.deadline.expired:
            return Cancelled(f"{operation} cancelled, invocation deadline exceeded: {error}")
        return RegistryError(f"{operation} failed: {error}")

    @staticmethod
    def _check(response: requests.Response, expected: Iterable[int], operation: str):
        if response.status_code in expected:
            return
        text = response.text[:300]
        raise RegistryError(
            f"{operation} failed with status {response.status_code}: {text}",
            status_code=response.status_code,
        )


def _media_type(response: requests.Response, manifest: Dict[str, Any]) -> str:
    header = response.headers.get("Content-Type", "").split(";")[0].strip()
    if header in MANIFEST_MEDIA_TYPES:
        return header
    if manifest.get("mediaType") in MANIFEST_MEDIA_TYPES:
        return manifest["mediaType"]
    return MEDIA_OCI_INDEX_V1 if "manifests" in manifest else MEDIA_OCI_MANIFEST_V1


def _referenced_blobs(manifest: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    if manifest.get("config"):
        yield manifest["config"]
    yield from manifest.get("layers", [])

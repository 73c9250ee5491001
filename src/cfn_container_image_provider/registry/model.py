"""Registry data models.

Defines the manifest media types, the credential used against a registry, and
the descriptor of a fetched manifest or manifest index.
"""

__all__ = [
    "MEDIA_DOCKER_MANIFEST_V2",
    "MEDIA_DOCKER_MANIFEST_LIST_V2",
    "MEDIA_OCI_MANIFEST_V1",
    "MEDIA_OCI_INDEX_V1",
    "INDEX_MEDIA_TYPES",
    "MANIFEST_MEDIA_TYPES",
    "FOREIGN_LAYER_MEDIA_TYPES",
    "Credential",
    "Descriptor",
    "ManifestEntry",
]

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cfn_container_image_provider.registry.platform import Platform
from cfn_container_image_provider.registry.reference import ImageReference

MEDIA_DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_OCI_MANIFEST_V1 = "application/vnd.oci.image.manifest.v1+json"
MEDIA_OCI_INDEX_V1 = "application/vnd.oci.image.index.v1+json"

INDEX_MEDIA_TYPES = frozenset([MEDIA_DOCKER_MANIFEST_LIST_V2, MEDIA_OCI_INDEX_V1])
MANIFEST_MEDIA_TYPES = (
    MEDIA_OCI_INDEX_V1,
    MEDIA_DOCKER_MANIFEST_LIST_V2,
    MEDIA_OCI_MANIFEST_V1,
    MEDIA_DOCKER_MANIFEST_V2,
)

# Layers that must not be redistributed; they are pulled from their `urls` instead.
FOREIGN_LAYER_MEDIA_TYPES = frozenset(
    [
        "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip",
        "application/vnd.oci.image.layer.nondistributable.v1.tar",
        "application/vnd.oci.image.layer.nondistributable.v1.tar+gzip",
        "application/vnd.oci.image.layer.nondistributable.v1.tar+zstd",
    ]
)


@dataclass(frozen=True)
class Credential:
    """Basic credential for a registry."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ManifestEntry:
    """One entry of a manifest index."""

    digest: str
    media_type: str
    size: int = 0
    platform: Optional[Platform] = None

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            digest=entry["digest"],
            media_type=entry.get("mediaType", ""),
            size=entry.get("size", 0),
            platform=Platform.from_manifest_entry(entry),
        )


@dataclass(frozen=True)
class Descriptor:
    """A manifest or manifest index fetched from a registry.

    Attributes:
        reference: Where the manifest was fetched from.
        media_type: Media type of the manifest.
        digest: Digest of the raw manifest bytes.
        content: The raw manifest bytes, pushed unmodified.
        platform: Platform of the manifest when it was selected from an index.
    """

    reference: ImageReference
    media_type: str
    digest: str
    content: bytes = field(repr=False)
    platform: Optional[Platform] = None

    @property
    def is_index(self) -> bool:
        return self.media_type in INDEX_MEDIA_TYPES

    @property
    def manifest(self) -> Dict[str, Any]:
        return json.loads(self.content)

    @property
    def manifests(self) -> List[ManifestEntry]:
        """Entries of an index, in source order. Empty for an image manifest."""
        if not self.is_index:
            return []
        return [ManifestEntry.from_dict(entry) for entry in self.manifest.get("manifests", [])]

    @property
    def platforms(self) -> List[str]:
        """Platform strings of the index entries that declare one, in source order."""
        return [str(entry.platform) for entry in self.manifests if entry.platform]

__all__ = [
    "MirrorExecutor",
]

import logging
from typing import List, Optional

from cfn_container_image_provider.exceptions import (
    RegistryError,
    SourceFetchFailed,
    TargetPushFailed,
)
from cfn_container_image_provider.handlers.container_image.model import (
    ContainerImageProperties,
    MirrorResult,
)
from cfn_container_image_provider.registry.client import RegistryClient
from cfn_container_image_provider.registry.model import Credential, Descriptor
from cfn_container_image_provider.registry.reference import ImageReference


class MirrorExecutor:
    """Copies the source image of a resource to its target reference.

    One execution is one fetch followed by one push. Pushing content that is
    already present in the target is a no-op on the registry side, so
    executing the same request again yields the same result.

    Args:
        client (RegistryClient): Client used for both the source and the target registry.
        logger (Optional[logging.Logger]): Logger for progress events.
    """

    def __init__(self, client: RegistryClient, logger: Optional[logging.Logger] = None):
        self.client = client
        self.log = logger or logging.getLogger(__name__)

    def execute(
        self,
        request: ContainerImageProperties,
        source_credential: Optional[Credential],
        target_credential: Credential,
    ) -> MirrorResult:
        """Mirror the source image of a resource.

        With a platform selected, the matching image of a multi-architecture
        source is mirrored. With all platforms selected, a multi-architecture
        source is mirrored as a whole, index included.

        Raises:
            SourceFetchFailed: If the source cannot be fetched.
            PlatformNotFound: If the source has no image for the selected platform.
            TargetPushFailed: If the image cannot be pushed to the target.
            Cancelled: If the invocation deadline passed.
        """
        selection = request.platform
        self.log.info(f"Fetching {request.source} for platform {selection}")
        try:
            descriptor = self.client.fetch_descriptor(
                request.source, platform=selection.platform, credential=source_credential
            )
        except RegistryError as e:
            raise SourceFetchFailed(f"failed to fetch {request.source}: {e}") from e

        platforms = self._platforms(request, descriptor)
        target = self._target(request, descriptor)

        self.log.info(f"Pushing {descriptor.digest} to {target}")
        try:
            self.client.push_descriptor(target, descriptor, target_credential)
        except RegistryError as e:
            raise TargetPushFailed(f"failed to push {target}: {e}") from e

        self.log.info(f"Mirrored {request.source} to {target} as {descriptor.digest}")
        return MirrorResult(
            digest=descriptor.digest,
            image_reference=str(target),
            platforms=platforms,
        )

    @staticmethod
    def _platforms(request: ContainerImageProperties, descriptor: Descriptor) -> List[str]:
        if not request.platform.is_all:
            return [str(request.platform.platform)]
        if descriptor.is_index:
            return descriptor.platforms
        return []

    def _target(self, request: ContainerImageProperties, descriptor: Descriptor) -> ImageReference:
        # A digest-pinned index narrowed to one platform is pushed under the image's own digest.
        target = request.target
        if target.digest and target.digest != descriptor.digest:
            self.log.info(
                f"Source {request.source} resolved to {descriptor.digest} for platform "
                f"{request.platform}, pushing by that digest"
            )
            return target.by_digest(descriptor.digest)
        return target

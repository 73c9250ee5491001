__all__ = [
    "ContainerImageProperties",
    "MirrorResult",
]

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from cfn_container_image_provider.handlers.container_image.platform import (
    PlatformSelection,
    select_platform,
)
from cfn_container_image_provider.handlers.container_image.repository import (
    RepositoryLocation,
    compose_target_reference,
    parse_repository_arn,
)
from cfn_container_image_provider.registry.reference import ImageReference

IMAGE_REFERENCE_PROPERTY = "ImageReference"
REPOSITORY_ARN_PROPERTY = "RepositoryArn"
PLATFORM_PROPERTY = "Platform"


@dataclass(frozen=True)
class ContainerImageProperties:
    """Validated properties of a `Custom::ContainerImage` resource.

    Attributes:
        source: Image to mirror.
        repository: ECR repository the image is mirrored into.
        target: Reference of the mirrored image.
        platform: Platforms of the source to mirror.
    """

    source: ImageReference
    repository: RepositoryLocation
    target: ImageReference
    platform: PlatformSelection

    @classmethod
    def from_resource_properties(cls, properties: Mapping[str, Any]) -> "ContainerImageProperties":
        """Validate the properties of a resource.

        Raises:
            MissingProperty: If `ImageReference` or `RepositoryArn` is absent or not a string.
            InvalidReferenceFormat: If `ImageReference` is malformed.
            InvalidRepositoryIdentifier: If `RepositoryArn` is not an ECR repository ARN.
            InvalidPlatformFormat: If `Platform` is malformed.
        """
        source = ImageReference.parse(
            properties.get(IMAGE_REFERENCE_PROPERTY), property_name=IMAGE_REFERENCE_PROPERTY
        )
        repository = parse_repository_arn(
            properties.get(REPOSITORY_ARN_PROPERTY), property_name=REPOSITORY_ARN_PROPERTY
        )
        platform = select_platform(properties.get(PLATFORM_PROPERTY))
        return cls(
            source=source,
            repository=repository,
            target=compose_target_reference(source, repository),
            platform=platform,
        )


@dataclass(frozen=True)
class MirrorResult:
    digest: str
    image_reference: str
    platforms: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Output attributes of the resource."""
        return {
            "Digest": self.digest,
            "ImageReference": self.image_reference,
            "Platforms": list(self.platforms),
        }

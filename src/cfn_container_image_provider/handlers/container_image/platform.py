"""Platform selection for multi-architecture images."""

__all__ = [
    "DEFAULT_PLATFORM",
    "PlatformSelection",
    "PlatformSpec",
    "select_platform",
]

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from cfn_container_image_provider.exceptions import InvalidPlatformFormat
from cfn_container_image_provider.registry.platform import Platform

DEFAULT_PLATFORM = Platform(os="linux", architecture="amd64")
ALL_PLATFORMS = "all"


class PlatformSpec(Enum):
    UNSPECIFIED = "unspecified"
    ALL = "all"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class PlatformSelection:
    """Which platforms of the source image to mirror.

    Attributes:
        spec: How the selection was specified.
        platform: Platform to select from an index, None to mirror all of them.
    """

    spec: PlatformSpec
    platform: Optional[Platform] = None

    @property
    def is_all(self) -> bool:
        return self.spec is PlatformSpec.ALL

    def __str__(self) -> str:
        return ALL_PLATFORMS if self.platform is None else str(self.platform)


def select_platform(value: Any) -> PlatformSelection:
    """Interpret the `Platform` property of a resource.

    An absent or blank value selects `linux/amd64`, `all` (any case) selects
    every platform, anything else must be `os/arch[/variant][:osversion]`.

    Raises:
        InvalidPlatformFormat: If the value is not a string or cannot be parsed.
    """
    if value is None:
        return PlatformSelection(PlatformSpec.UNSPECIFIED, DEFAULT_PLATFORM)
    if not isinstance(value, str):
        raise InvalidPlatformFormat(f"invalid Platform format, expected a string, got {value!r}")

    normalized = value.strip()
    if not normalized:
        return PlatformSelection(PlatformSpec.UNSPECIFIED, DEFAULT_PLATFORM)
    if normalized.lower() == ALL_PLATFORMS:
        return PlatformSelection(PlatformSpec.ALL)
    return PlatformSelection(PlatformSpec.EXPLICIT, Platform.parse(normalized))

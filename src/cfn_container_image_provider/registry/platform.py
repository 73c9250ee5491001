__all__ = [
    "Platform",
]

from dataclasses import dataclass
from typing import Any, Dict, Optional

from cfn_container_image_provider.exceptions import InvalidPlatformFormat


@dataclass(frozen=True)
class Platform:
    """The platform an image runs on, as listed in a manifest index.

    Attributes:
        os: Operating system (e.g. `linux`).
        architecture: CPU architecture (e.g. `amd64`).
        variant: Optional CPU variant (e.g. `v8`).
        os_version: Optional operating system version (Windows images).
    """

    os: str
    architecture: str
    variant: str = ""
    os_version: str = ""

    def __str__(self) -> str:
        value = f"{self.os}/{self.architecture}"
        if self.variant:
            value += f"/{self.variant}"
        if self.os_version:
            value += f":{self.os_version}"
        return value

    def matches(self, candidate: "Platform") -> bool:
        """Whether `candidate` satisfies this platform as a requirement.

        Operating system and architecture must be equal. Variant and OS version
        are only compared when this platform specifies them.
        """
        if self.os != candidate.os or self.architecture != candidate.architecture:
            return False
        if self.variant and self.variant != candidate.variant:
            return False
        if self.os_version and self.os_version != candidate.os_version:
            return False
        return True

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Parse `os/arch[/variant][:osversion]`.

        Raises:
            InvalidPlatformFormat: If the value is not of that form.
        """
        specifier, _, os_version = value.strip().partition(":")
        parts = specifier.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise InvalidPlatformFormat(
                f"invalid Platform format, {value!r} is not of the form os/arch[/variant]"
            )
        return cls(
            os=parts[0],
            architecture=parts[1],
            variant=parts[2] if len(parts) == 3 else "",
            os_version=os_version,
        )

    @classmethod
    def from_manifest_entry(cls, entry: Dict[str, Any]) -> Optional["Platform"]:
        """Platform of an index entry, or None when the entry has none."""
        platform = entry.get("platform")
        if not platform:
            return None
        return cls(
            os=platform.get("os", ""),
            architecture=platform.get("architecture", ""),
            variant=platform.get("variant", ""),
            os_version=platform.get("os.version", ""),
        )

"""Container image references.

Parses `[registry/]repository[:tag][@digest]` strings following the grammar of
the distribution reference format:

    reference       := name [ ":" tag ] [ "@" digest ]
    name            := [ domain "/" ] path-component [ "/" path-component ]*
    domain          := host [ ":" port ]
    path-component  := alpha-numeric [ separator alpha-numeric ]*
    separator       := "." | "_" | "__" | "-"+
    tag             := [A-Za-z0-9_][A-Za-z0-9_.-]{0,127}
    digest          := algorithm ":" hex
"""

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "ImageReference",
    "ReferenceForm",
]

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, List, Optional, Tuple

from cfn_container_image_provider.exceptions import InvalidReferenceFormat, MissingProperty

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"
LEGACY_DEFAULT_REGISTRY = "index.docker.io"
OFFICIAL_REPOSITORY_PREFIX = "library"

NAME_TOTAL_LENGTH_MAX = 255

DOMAIN_PATTERN = re.compile(
    r"^(?:(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
    r"(?:\.(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9]))*"
    r"|\[[a-fA-F0-9:]+\])"
    r"(?::[0-9]+)?$"
)
PATH_COMPONENT_PATTERN = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")
SHA256_PATTERN = re.compile(r"^sha256:[a-f0-9]{64}$")


class ReferenceForm(Enum):
    """Which of tag and digest were supplied in the reference string."""

    NAME_ONLY = "name"
    NAME_TAG = "name:tag"
    NAME_DIGEST = "name@digest"
    NAME_TAG_DIGEST = "name:tag@digest"

    @classmethod
    def of(cls, has_tag: bool, has_digest: bool) -> "ReferenceForm":
        if has_tag and has_digest:
            return cls.NAME_TAG_DIGEST
        if has_tag:
            return cls.NAME_TAG
        if has_digest:
            return cls.NAME_DIGEST
        return cls.NAME_ONLY


@dataclass(frozen=True)
class ImageReference:
    """A parsed and normalized container image reference.

    After parsing at least one of `tag` and `digest` is set: a reference with
    neither gets the tag `latest`. When both are set the digest pins the exact
    content to fetch.

    Attributes:
        registry: Registry host, optionally with port (e.g. `docker.io`).
        repository: Repository path within the registry (e.g. `library/python`).
        tag: Tag, or empty string.
        digest: Digest (`algorithm:hex`), or empty string.
        form: Which of tag and digest were present in the parsed string.
    """

    registry: str
    repository: str
    tag: str = ""
    digest: str = ""
    form: ReferenceForm = ReferenceForm.NAME_TAG

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}"

    @property
    def identifier(self) -> str:
        """The manifest identifier to resolve: the digest if pinned, else the tag."""
        return self.digest or self.tag

    def by_digest(self, digest: str) -> "ImageReference":
        """Reference to another manifest in the same repository, pinned by digest."""
        return replace(self, tag="", digest=digest, form=ReferenceForm.NAME_DIGEST)

    def __str__(self) -> str:
        value = self.name
        if self.tag:
            value += f":{self.tag}"
        if self.digest:
            value += f"@{self.digest}"
        return value

    @classmethod
    def parse(cls, value: Any, property_name: str = "ImageReference") -> "ImageReference":
        """Parse a reference string.

        Args:
            value (Any): The raw reference. Anything other than a string is rejected.
            property_name (str): Name reported when the value is missing.

        Raises:
            MissingProperty: If the value is absent or not a string.
            InvalidReferenceFormat: If the value does not follow the reference grammar.

        Returns:
            The normalized reference with the default tag policy applied.
        """
        if not isinstance(value, str):
            raise MissingProperty(property_name)

        remainder, digest = _split_digest(value)
        remainder, tag = _split_tag(value, remainder)
        registry, repository = _split_name(value, remainder)

        if len(remainder) > NAME_TOTAL_LENGTH_MAX:
            raise InvalidReferenceFormat(
                value, NAME_TOTAL_LENGTH_MAX, f"name exceeds {NAME_TOTAL_LENGTH_MAX} characters"
            )

        form = ReferenceForm.of(has_tag=bool(tag), has_digest=bool(digest))
        if form is ReferenceForm.NAME_ONLY:
            tag = DEFAULT_TAG
        return cls(registry=registry, repository=repository, tag=tag, digest=digest, form=form)


def _split_digest(value: str) -> Tuple[str, str]:
    at = value.find("@")
    if at == -1:
        return value, ""
    digest = value[at + 1 :]
    if not DIGEST_PATTERN.match(digest):
        raise InvalidReferenceFormat(value, at + 1, "invalid digest")
    if digest.startswith("sha256:") and not SHA256_PATTERN.match(digest):
        raise InvalidReferenceFormat(value, at + 1, "invalid sha256 digest")
    return value[:at], digest


def _split_tag(value: str, remainder: str) -> Tuple[str, str]:
    colon = remainder.rfind(":")
    if colon == -1 or colon < remainder.rfind("/"):
        return remainder, ""
    tag = remainder[colon + 1 :]
    if not TAG_PATTERN.match(tag):
        raise InvalidReferenceFormat(value, colon + 1, "invalid tag")
    return remainder[:colon], tag


def _split_name(value: str, name: str) -> Tuple[str, str]:
    if not name:
        raise InvalidReferenceFormat(value, 0, "repository name must have at least one component")

    components: List[str] = name.split("/")
    registry: Optional[str] = None
    offset = 0
    if len(components) > 1 and _is_domain(components[0]):
        registry = components.pop(0)
        if not DOMAIN_PATTERN.match(registry):
            raise InvalidReferenceFormat(value, 0, "invalid registry domain")
        offset = len(registry) + 1

    for component in components:
        if not PATH_COMPONENT_PATTERN.match(component):
            reason = (
                "repository name must be lowercase"
                if component.lower() != component
                else "invalid repository path component"
            )
            raise InvalidReferenceFormat(value, offset, reason)
        offset += len(component) + 1

    repository = "/".join(components)
    if registry is None or registry == LEGACY_DEFAULT_REGISTRY:
        registry = DEFAULT_REGISTRY
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"{OFFICIAL_REPOSITORY_PREFIX}/{repository}"
    return registry, repository


def _is_domain(component: str) -> bool:
    return (
        "." in component
        or ":" in component
        or component == "localhost"
        or component.lower() != component
    )

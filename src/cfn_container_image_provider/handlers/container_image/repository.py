"""Target repository resolution.

Resolves the `RepositoryArn` of a resource into the ECR repository it names
and composes the reference the source image is mirrored to.
"""

__all__ = [
    "REPOSITORY_ARN_PATTERN",
    "RepositoryLocation",
    "compose_target_reference",
    "parse_repository_arn",
]

import re
from dataclasses import dataclass
from typing import Any

from cfn_container_image_provider.exceptions import InvalidRepositoryIdentifier, MissingProperty
from cfn_container_image_provider.registry.ecr import registry_host
from cfn_container_image_provider.registry.reference import ImageReference, ReferenceForm

REPOSITORY_ARN_PATTERN = re.compile(
    r"^arn:(?P<partition>aws|aws-cn|aws-us-gov):ecr:(?P<region>[a-z0-9-]+):(?P<account>\d+)"
    r":repository/(?P<name>[a-z][a-z0-9-_/.]+)$"
)


@dataclass(frozen=True)
class RepositoryLocation:
    partition: str
    region: str
    account_id: str
    repository_name: str

    @property
    def registry(self) -> str:
        return registry_host(self.account_id, self.region, self.partition)


def parse_repository_arn(value: Any, property_name: str = "RepositoryArn") -> RepositoryLocation:
    """Resolve an ECR repository ARN. No AWS call is made.

    Raises:
        MissingProperty: If the value is absent or not a string.
        InvalidRepositoryIdentifier: If the value is not an ECR repository ARN.
    """
    if not isinstance(value, str):
        raise MissingProperty(property_name)
    match = REPOSITORY_ARN_PATTERN.match(value)
    if not match:
        raise InvalidRepositoryIdentifier(value)
    return RepositoryLocation(
        partition=match.group("partition"),
        region=match.group("region"),
        account_id=match.group("account"),
        repository_name=match.group("name"),
    )


def compose_target_reference(
    source: ImageReference, location: RepositoryLocation
) -> ImageReference:
    """Reference of the mirrored image in the target repository.

    The target keeps the tag of the source if it has one, else its digest.
    """
    tagged_forms = (ReferenceForm.NAME_ONLY, ReferenceForm.NAME_TAG, ReferenceForm.NAME_TAG_DIGEST)
    if source.form in tagged_forms:
        # NAME_ONLY carries the default tag applied by the parser.
        tag, digest, form = source.tag, "", ReferenceForm.NAME_TAG
    elif source.form is ReferenceForm.NAME_DIGEST:
        tag, digest, form = "", source.digest, ReferenceForm.NAME_DIGEST
    else:
        raise ValueError(f"unknown reference form {source.form}")

    return ImageReference(
        registry=location.registry,
        repository=location.repository_name,
        tag=tag,
        digest=digest,
        form=form,
    )

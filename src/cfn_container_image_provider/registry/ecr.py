"""Amazon ECR operations.

ECR registries are addressed as `<account>.dkr.ecr.<region>.<domain>`. Push
credentials are obtained from the ECR authorization token of the region; the
token is the base64 encoding of `<username>:<password>`.
"""

__all__ = [
    "ECR_REGISTRY_PATTERN",
    "delete_image",
    "ecr_client_config",
    "get_push_credential",
    "parse_registry_host",
    "registry_host",
]

import base64
import binascii
import logging
import re
from typing import Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cfn_container_image_provider.common.deadline import Deadline
from cfn_container_image_provider.exceptions import Cancelled, MalformedCredential, RegistryError
from cfn_container_image_provider.registry.model import Credential
from cfn_container_image_provider.registry.reference import ImageReference

logger = logging.getLogger(__name__)

ECR_REGISTRY_PATTERN = re.compile(
    r"^(?P<account>\d{12})\.dkr\.ecr\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?P<china>\.cn)?$"
)

PARTITION_DOMAINS = {
    "aws": "amazonaws.com",
    "aws-cn": "amazonaws.com.cn",
    "aws-us-gov": "amazonaws.com",
}

ECR_MAX_ATTEMPTS = 2


def registry_host(account: str, region: str, partition: str = "aws") -> str:
    return f"{account}.dkr.ecr.{region}.{PARTITION_DOMAINS.get(partition, 'amazonaws.com')}"


def parse_registry_host(host: str) -> Optional[Tuple[str, str]]:
    """Account and region of an ECR registry host, None for any other host."""
    match = ECR_REGISTRY_PATTERN.match(host)
    if not match:
        return None
    return match.group("account"), match.group("region")


def ecr_client_config(deadline: Deadline, request_timeout: float, operation: str) -> Config:
    """Client configuration bounding connect and read timeouts by the invocation deadline.

    Raises:
        Cancelled: If the deadline already passed.
    """
    timeout = deadline.timeout(request_timeout, operation)
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": ECR_MAX_ATTEMPTS, "mode": "standard"},
    )


def get_push_credential(
    region: str,
    ecr_client=None,
    deadline: Optional[Deadline] = None,
    request_timeout: float = 60.0,
) -> Credential:
    """Fetch a credential for pushing to the ECR registries of a region.

    Args:
        region (str): Region of the target registry.
        ecr_client: ECR client to use, one bounded by the deadline is created if omitted.
        deadline (Optional[Deadline]): Invocation deadline, checked before the call.
        request_timeout (float): Upper bound in seconds for the call.

    Raises:
        MalformedCredential: If no token is returned or it is not `<username>:<password>`.
        Cancelled: If the deadline passed.
    """
    deadline = deadline or Deadline()
    operation = f"ECR authorization token request in {region}"
    ecr = ecr_client or boto3.client(
        "ecr", region_name=region, config=ecr_client_config(deadline, request_timeout, operation)
    )
    deadline.check(operation)
    try:
        response = ecr.get_authorization_token()
    except BotoCoreError as e:
        if deadline.expired:
            raise Cancelled(f"{operation} cancelled, invocation deadline exceeded: {e}") from e
        raise
    data = response.get("authorizationData") or []
    if not data:
        raise MalformedCredential(f"no ECR authorization data returned for region {region}")

    try:
        decoded = base64.b64decode(data[0]["authorizationToken"]).decode()
    except (KeyError, binascii.Error, UnicodeDecodeError) as e:
        raise MalformedCredential(f"ECR authorization token could not be decoded: {e}") from e

    parts = decoded.split(":")
    if len(parts) != 2:
        raise MalformedCredential("ECR authorization token is not of the form username:password")
    logger.debug(f"Obtained ECR push credential for {region}")
    return Credential(username=parts[0], password=parts[1])


def delete_image(
    reference: ImageReference,
    ecr_client=None,
    deadline: Optional[Deadline] = None,
    request_timeout: float = 60.0,
) -> None:
    """Delete the image identified by a reference from its ECR repository.

    The tag is deleted if the reference has one, else the digest. An image
    that does not exist is not an error.

    Raises:
        RegistryError: If the registry is not ECR or the deletion fails.
        Cancelled: If the deadline passed.
    """
    location = parse_registry_host(reference.registry)
    if location is None:
        raise RegistryError(f"{reference.registry} is not an ECR registry")
    account, region = location

    image_id = {"imageTag": reference.tag} if reference.tag else {"imageDigest": reference.digest}
    deadline = deadline or Deadline()
    operation = f"delete of {reference}"
    ecr = ecr_client or boto3.client(
        "ecr", region_name=region, config=ecr_client_config(deadline, request_timeout, operation)
    )
    deadline.check(operation)
    try:
        response = ecr.batch_delete_image(
            registryId=account, repositoryName=reference.repository, imageIds=[image_id]
        )
    except (ClientError, BotoCoreError) as e:
        if deadline.expired:
            raise Cancelled(f"{operation} cancelled, invocation deadline exceeded: {e}") from e
        raise RegistryError(f"failed to delete {reference}: {e}") from e

    failures = [
        failure
        for failure in response.get("failures", [])
        if failure.get("failureCode") != "ImageNotFound"
    ]
    if failures:
        reasons = ", ".join(
            f"{failure.get('failureCode')}: {failure.get('failureReason')}" for failure in failures
        )
        raise RegistryError(f"failed to delete {reference}: {reasons}")
    logger.info(f"Deleted {reference}")

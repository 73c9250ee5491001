"""Exceptions raised while resolving and mirroring container images.

Validation errors (`MissingProperty`, `InvalidReferenceFormat`,
`InvalidRepositoryIdentifier`, `InvalidPlatformFormat`) are raised before any
network call is made. The message of every exception is reported verbatim to
CloudFormation as the reason of a failed resource operation.
"""

__all__ = [
    "ContainerImageProviderException",
    "MissingProperty",
    "InvalidReferenceFormat",
    "InvalidRepositoryIdentifier",
    "InvalidPlatformFormat",
    "SourceFetchFailed",
    "PlatformNotFound",
    "TargetPushFailed",
    "MalformedCredential",
    "UnsupportedRequest",
    "Cancelled",
    "RegistryError",
]

from typing import Optional

from aibs_informatics_core.exceptions import ApplicationException


class ContainerImageProviderException(ApplicationException):
    """Base class of all container image provider errors."""


class MissingProperty(ContainerImageProviderException):
    def __init__(self, name: str):
        super().__init__(f"{name} is missing or not a string")
        self.name = name


class InvalidReferenceFormat(ContainerImageProviderException):
    """The image reference does not follow `[registry/]repository[:tag][@digest]`.

    Attributes:
        reference: The offending reference string.
        position: Index of the character at which parsing failed.
    """

    def __init__(self, reference: str, position: int, reason: str = ""):
        message = f"{reference}: invalid reference format"
        if reason:
            message = f"{message}: {reason} (position {position})"
        super().__init__(message)
        self.reference = reference
        self.position = position


class InvalidRepositoryIdentifier(ContainerImageProviderException):
    def __init__(self, arn: str):
        super().__init__(f"Invalid AWS ECR repository ARN: {arn}")
        self.arn = arn


class InvalidPlatformFormat(ContainerImageProviderException):
    pass


class SourceFetchFailed(ContainerImageProviderException):
    pass


class PlatformNotFound(ContainerImageProviderException):
    pass


class TargetPushFailed(ContainerImageProviderException):
    pass


class MalformedCredential(ContainerImageProviderException):
    pass


class UnsupportedRequest(ContainerImageProviderException):
    pass


class Cancelled(ContainerImageProviderException):
    """The invocation deadline passed or the invocation was cancelled."""


class RegistryError(ContainerImageProviderException):
    """A registry HTTP call failed.

    Attributes:
        status_code: HTTP status of the failed call, if a response was received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

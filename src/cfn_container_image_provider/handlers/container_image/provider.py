"""`Custom::ContainerImage` resource provider.

Create and Update mirror the image named by the `ImageReference` property
into the ECR repository named by `RepositoryArn`; the physical id of the
resource is the reference of the mirrored image. Delete removes that image
again, but never fails the stack operation.
"""

__all__ = [
    "FAILED_PHYSICAL_RESOURCE_ID",
    "RESOURCE_TYPE",
    "ContainerImageHandler",
    "RequestType",
    "handler",
]

from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ContextManager, Optional

from cfn_container_image_provider.common.custom_resource import (
    CustomResourceHandler,
    CustomResourceRequest,
    CustomResourceResponse,
)
from cfn_container_image_provider.common.deadline import Deadline
from cfn_container_image_provider.exceptions import (
    InvalidReferenceFormat,
    MissingProperty,
    UnsupportedRequest,
)
from cfn_container_image_provider.handlers.container_image.mirror import MirrorExecutor
from cfn_container_image_provider.handlers.container_image.model import ContainerImageProperties
from cfn_container_image_provider.registry.client import RegistryClient, RemoteRegistryClient
from cfn_container_image_provider.registry.ecr import (
    delete_image,
    get_push_credential,
    parse_registry_host,
)
from cfn_container_image_provider.registry.model import Credential
from cfn_container_image_provider.registry.reference import ImageReference

RESOURCE_TYPE = "Custom::ContainerImage"
FAILED_PHYSICAL_RESOURCE_ID = "create-failed"


class RequestType(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


@dataclass  # type: ignore[misc] # mypy #5374
class ContainerImageHandler(CustomResourceHandler):
    """Handler of `Custom::ContainerImage` resources.

    Attributes:
        registry_client: Client used for mirroring. A `RemoteRegistryClient`
            bound to the invocation deadline is created per request if omitted.
        credential_provider: Returns the ECR push credential of a region. Called with
            the region and the `deadline` and `request_timeout` keywords.
        image_deleter: Deletes a mirrored image from ECR. Called with the reference
            and the `deadline` and `request_timeout` keywords.
    """

    registry_client: Optional[RegistryClient] = None
    credential_provider: Callable[..., Credential] = get_push_credential
    image_deleter: Callable[..., None] = delete_image

    def handle(self, request: CustomResourceRequest) -> CustomResourceResponse:
        if request.resource_type != RESOURCE_TYPE:
            raise UnsupportedRequest(
                f"unsupported resource type {request.resource_type}, expected {RESOURCE_TYPE}"
            )
        try:
            request_type = RequestType(request.request_type)
        except ValueError:
            raise UnsupportedRequest(f"unsupported request type {request.request_type}") from None

        if request_type is RequestType.CREATE or request_type is RequestType.UPDATE:
            return self.mirror(request)
        elif request_type is RequestType.DELETE:
            return self.delete(request)
        else:
            raise UnsupportedRequest(f"unsupported request type {request_type.value}")

    def failure_physical_resource_id(self, request: CustomResourceRequest) -> str:
        if request.request_type == RequestType.CREATE.value:
            return FAILED_PHYSICAL_RESOURCE_ID
        return super().failure_physical_resource_id(request)

    def mirror(self, request: CustomResourceRequest) -> CustomResourceResponse:
        """Mirror the image of a created or updated resource."""
        properties = ContainerImageProperties.from_resource_properties(
            request.resource_properties
        )
        self.log.info(
            f"{request.request_type} {request.logical_resource_id}: "
            f"mirroring {properties.source} to {properties.target} "
            f"for platform {properties.platform}"
        )

        deadline = self.get_deadline(margin=self.config.deadline_margin)
        target_credential = self.credential_provider(
            properties.repository.region,
            deadline=deadline,
            request_timeout=self.config.registry_request_timeout,
        )
        # Anonymous pull, unless the source lives in the target registry.
        source_credential = (
            target_credential if properties.source.registry == properties.target.registry else None
        )

        with self._registry_client(deadline) as client:
            result = MirrorExecutor(client, logger=self.log).execute(
                properties, source_credential, target_credential
            )
        return request.success(physical_resource_id=result.image_reference, data=result.to_dict())

    def delete(self, request: CustomResourceRequest) -> CustomResourceResponse:
        """Delete the mirrored image of a deleted resource.

        Failures are logged and ignored so that a stack can always be deleted.
        """
        physical_resource_id = request.physical_resource_id
        if physical_resource_id == FAILED_PHYSICAL_RESOURCE_ID:
            self.log.info("Resource was never created, nothing to delete")
            return request.success(physical_resource_id)

        try:
            reference = ImageReference.parse(physical_resource_id, property_name="PhysicalResourceId")
        except (MissingProperty, InvalidReferenceFormat) as e:
            self.log.warning(f"Ignoring invalid physical resource id {physical_resource_id}: {e}")
            return request.success(physical_resource_id)

        if parse_registry_host(reference.registry) is None:
            self.log.warning(f"Ignoring delete of {reference}, not an ECR image")
            return request.success(physical_resource_id)

        try:
            self.image_deleter(
                reference,
                deadline=self.get_deadline(margin=self.config.deadline_margin),
                request_timeout=self.config.registry_request_timeout,
            )
        except Exception as e:
            self.log.warning(f"Ignoring failed delete of image {physical_resource_id}: {e}")
        return request.success(physical_resource_id)

    def _registry_client(self, deadline: Deadline) -> ContextManager[RegistryClient]:
        if self.registry_client is not None:
            return nullcontext(self.registry_client)
        return RemoteRegistryClient(
            deadline=deadline,
            request_timeout=self.config.registry_request_timeout,
            spool_max_size=self.config.blob_spool_max_size,
            logger=self.log,
        )


handler = ContainerImageHandler.get_handler()

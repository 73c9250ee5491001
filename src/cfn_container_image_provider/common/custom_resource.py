"""CloudFormation custom resource protocol.

CloudFormation invokes a custom resource provider with a request envelope and
waits for the provider to `PUT` a response to the pre-signed `ResponseURL` of
the request. A provider must always respond, also when it fails, or the stack
operation hangs until it times out.
"""

__all__ = [
    "CustomResourceHandler",
    "CustomResourceRequest",
    "CustomResourceResponse",
    "ResponseStatus",
    "send_response",
]

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests
from aibs_informatics_core.utils.json import JSON
from aws_lambda_powertools.logging import Logger
from aws_lambda_powertools.utilities.data_classes import CloudFormationCustomResourceEvent

from cfn_container_image_provider.common.config import ProviderConfig
from cfn_container_image_provider.common.handler import LambdaHandler
from cfn_container_image_provider.exceptions import UnsupportedRequest

logger = logging.getLogger(__name__)


class ResponseStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CustomResourceResponse:
    """Response body reported to CloudFormation."""

    status: ResponseStatus
    physical_resource_id: str
    stack_id: str
    request_id: str
    logical_resource_id: str
    reason: str = ""
    no_echo: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "Status": self.status.value,
            "PhysicalResourceId": self.physical_resource_id,
            "StackId": self.stack_id,
            "RequestId": self.request_id,
            "LogicalResourceId": self.logical_resource_id,
            "NoEcho": self.no_echo,
            "Data": self.data,
        }
        if self.reason:
            body["Reason"] = self.reason
        return body


@dataclass(frozen=True)
class CustomResourceRequest:
    """A CloudFormation custom resource request.

    Attributes:
        request_type: `Create`, `Update` or `Delete`, as sent by CloudFormation.
        resource_type: Resource type of the template, e.g. `Custom::ContainerImage`.
        physical_resource_id: Physical id reported earlier, empty for `Create`.
        resource_properties: Properties of the resource in the template.
        old_resource_properties: Previous properties, only sent for `Update`.
        response_url: Pre-signed URL to report the response to. Empty when
            the function is invoked directly.
    """

    request_type: str
    resource_type: str
    stack_id: str
    request_id: str
    logical_resource_id: str
    response_url: str = ""
    physical_resource_id: str = ""
    resource_properties: Dict[str, Any] = field(default_factory=dict)
    old_resource_properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomResourceRequest":
        """Read a request from the invocation event.

        Raises:
            UnsupportedRequest: If the event is not a custom resource request.
        """
        event = CloudFormationCustomResourceEvent(data)
        try:
            return cls(
                request_type=event.request_type,
                resource_type=event.resource_type,
                stack_id=event.stack_id,
                request_id=event.request_id,
                logical_resource_id=event.logical_resource_id,
                response_url=event.get("ResponseURL") or "",
                physical_resource_id=event.physical_resource_id or "",
                resource_properties=event.resource_properties or {},
                old_resource_properties=event.old_resource_properties or {},
            )
        except KeyError as e:
            raise UnsupportedRequest(
                f"not a CloudFormation custom resource request, missing {e.args[0]}"
            ) from e

    def to_dict(self) -> Dict[str, Any]:
        event = {
            "RequestType": self.request_type,
            "ResourceType": self.resource_type,
            "StackId": self.stack_id,
            "RequestId": self.request_id,
            "LogicalResourceId": self.logical_resource_id,
            "ResourceProperties": self.resource_properties,
        }
        if self.response_url:
            event["ResponseURL"] = self.response_url
        if self.physical_resource_id:
            event["PhysicalResourceId"] = self.physical_resource_id
        if self.old_resource_properties:
            event["OldResourceProperties"] = self.old_resource_properties
        return event

    def success(
        self, physical_resource_id: str, data: Optional[Dict[str, Any]] = None
    ) -> CustomResourceResponse:
        return CustomResourceResponse(
            status=ResponseStatus.SUCCESS,
            physical_resource_id=physical_resource_id,
            stack_id=self.stack_id,
            request_id=self.request_id,
            logical_resource_id=self.logical_resource_id,
            data=data or {},
        )

    def failure(self, reason: str, physical_resource_id: str) -> CustomResourceResponse:
        return CustomResourceResponse(
            status=ResponseStatus.FAILED,
            physical_resource_id=physical_resource_id,
            stack_id=self.stack_id,
            request_id=self.request_id,
            logical_resource_id=self.logical_resource_id,
            reason=reason,
        )


def send_response(
    response_url: str,
    response: CustomResourceResponse,
    timeout: float,
    log: Union[Logger, logging.Logger] = logger,
) -> bool:
    """Report a response to CloudFormation.

    Errors are logged, not raised: there is nobody left to report them to.

    Returns:
        True if the response was accepted.
    """
    if not response_url:
        log.info("Request has no ResponseURL, not sending response")
        return False

    body = json.dumps(response.to_dict())
    try:
        reply = requests.put(
            response_url,
            data=body,
            headers={"Content-Type": "", "Content-Length": str(len(body))},
            timeout=timeout,
        )
    except requests.RequestException as e:
        log.error(f"Failed to send {response.status.value} response to CloudFormation: {e}")
        return False

    if not reply.ok:
        log.error(
            f"CloudFormation rejected {response.status.value} response "
            f"with status {reply.status_code}: {reply.text[:300]}"
        )
        return False
    log.info(f"Sent {response.status.value} response to CloudFormation")
    return True


@dataclass  # type: ignore[misc] # mypy #5374
class CustomResourceHandler(LambdaHandler[CustomResourceRequest, CustomResourceResponse]):
    """Base class of CloudFormation custom resource handlers.

    Subclasses implement `handle` and return `request.success(...)`. Any
    exception it raises is reported as a `FAILED` response whose reason is the
    exception message. Every response is sent to the `ResponseURL` of the
    request and returned from the function.
    """

    config: ProviderConfig = field(default_factory=ProviderConfig)

    @classmethod
    def deserialize_request(cls, request: JSON) -> CustomResourceRequest:
        return CustomResourceRequest.from_dict(request)  # type: ignore[arg-type]

    @classmethod
    def serialize_response(cls, response: CustomResourceResponse) -> JSON:
        return response.to_dict()

    def failure_physical_resource_id(self, request: CustomResourceRequest) -> str:
        """Physical id reported when handling a request fails."""
        return request.physical_resource_id or self.context.log_stream_name

    def process(self, request: CustomResourceRequest) -> CustomResourceResponse:
        start = datetime.now()
        metric_name = request.request_type
        try:
            response = self.handle(request)
        except Exception as e:
            self.log.exception(
                f"{request.request_type} of {request.logical_resource_id} failed: {e}"
            )
            response = request.failure(
                reason=str(e), physical_resource_id=self.failure_physical_resource_id(request)
            )
            self.metrics.add_failure_metric(metric_name)
        else:
            self.metrics.add_success_metric(metric_name)
        self.metrics.add_duration_metric(start=start, name=metric_name)

        send_response(
            request.response_url, response, timeout=self.config.response_timeout, log=self.log
        )
        return response

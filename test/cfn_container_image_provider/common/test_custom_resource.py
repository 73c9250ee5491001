import json
from dataclasses import dataclass
from test.cfn_container_image_provider.base import (
    RESPONSE_URL,
    STACK_ID,
    LambdaHandlerTestCase,
    custom_resource_event,
)
from unittest import mock

import requests

from cfn_container_image_provider.common.custom_resource import (
    CustomResourceHandler,
    CustomResourceRequest,
    CustomResourceResponse,
    ResponseStatus,
    send_response,
)
from cfn_container_image_provider.common.handler import LambdaHandlerType
from cfn_container_image_provider.exceptions import UnsupportedRequest


@dataclass  # type: ignore[misc]
class EchoHandler(CustomResourceHandler):
    def handle(self, request: CustomResourceRequest) -> CustomResourceResponse:
        if request.resource_properties.get("Fail"):
            raise ValueError("echo failed")
        return request.success("echo-1", {"Value": request.resource_properties.get("Value")})


class CustomResourceRequestTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return EchoHandler.get_handler()

    def test__from_dict__reads_envelope(self):
        event = custom_resource_event(
            "Update", {"Value": "1"}, physical_resource_id="echo-1", resource_type="Custom::Echo"
        )
        event["OldResourceProperties"] = {"Value": "0"}

        request = CustomResourceRequest.from_dict(event)

        self.assertEqual(request.request_type, "Update")
        self.assertEqual(request.resource_type, "Custom::Echo")
        self.assertEqual(request.stack_id, STACK_ID)
        self.assertEqual(request.logical_resource_id, "Image")
        self.assertEqual(request.response_url, RESPONSE_URL)
        self.assertEqual(request.physical_resource_id, "echo-1")
        self.assertEqual(request.resource_properties, {"Value": "1"})
        self.assertEqual(request.old_resource_properties, {"Value": "0"})
        self.assertEqual(CustomResourceRequest.from_dict(request.to_dict()), request)

    def test__from_dict__without_response_url(self):
        request = CustomResourceRequest.from_dict(custom_resource_event(response_url=None))
        self.assertEqual(request.response_url, "")
        self.assertEqual(request.physical_resource_id, "")

    def test__from_dict__rejects_other_events(self):
        with self.assertRaises(UnsupportedRequest):
            CustomResourceRequest.from_dict({"Records": []})

    def test__response__to_dict(self):
        request = CustomResourceRequest.from_dict(custom_resource_event())

        self.assertDictEqual(
            request.success("id-1", {"Digest": "sha256:1"}).to_dict(),
            {
                "Status": "SUCCESS",
                "PhysicalResourceId": "id-1",
                "StackId": STACK_ID,
                "RequestId": request.request_id,
                "LogicalResourceId": "Image",
                "NoEcho": False,
                "Data": {"Digest": "sha256:1"},
            },
        )
        failed = request.failure("it broke", "id-1").to_dict()
        self.assertEqual(failed["Status"], "FAILED")
        self.assertEqual(failed["Reason"], "it broke")
        self.assertEqual(failed["Data"], {})


class SendResponseTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return EchoHandler.get_handler()

    def setUp(self) -> None:
        super().setUp()
        self.mock_put = self.create_patch(
            "cfn_container_image_provider.common.custom_resource.requests.put"
        )
        self.response = CustomResourceRequest.from_dict(custom_resource_event()).success("id-1")

    def test__send_response__puts_body_to_response_url(self):
        self.mock_put.return_value.ok = True

        self.assertTrue(send_response(RESPONSE_URL, self.response, timeout=3))

        self.mock_put.assert_called_once()
        args, kwargs = self.mock_put.call_args
        self.assertEqual(args, (RESPONSE_URL,))
        self.assertEqual(json.loads(kwargs["data"]), self.response.to_dict())
        self.assertEqual(kwargs["headers"]["Content-Type"], "")
        self.assertEqual(kwargs["timeout"], 3)

    def test__send_response__without_response_url(self):
        self.assertFalse(send_response("", self.response, timeout=3))
        self.mock_put.assert_not_called()

    def test__send_response__logs_rejection(self):
        self.mock_put.return_value.ok = False
        self.mock_put.return_value.status_code = 403
        self.mock_put.return_value.text = "SignatureDoesNotMatch"

        self.assertFalse(send_response(RESPONSE_URL, self.response, timeout=3))

    def test__send_response__does_not_raise_on_connection_error(self):
        self.mock_put.side_effect = requests.ConnectionError("unreachable")

        self.assertFalse(send_response(RESPONSE_URL, self.response, timeout=3))


class CustomResourceHandlerTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return EchoHandler.get_handler()

    def setUp(self) -> None:
        super().setUp()
        self.mock_send_response = self.create_patch(
            "cfn_container_image_provider.common.custom_resource.send_response"
        )

    def sent_response(self) -> CustomResourceResponse:
        self.mock_send_response.assert_called_once()
        url, response = self.mock_send_response.call_args.args
        self.assertEqual(url, RESPONSE_URL)
        return response

    def test__handler__reports_success(self):
        event = custom_resource_event("Create", {"Value": "1"}, resource_type="Custom::Echo")

        actual = self.handler(event, self.context)

        self.assertEqual(actual["Status"], "SUCCESS")
        self.assertEqual(actual["PhysicalResourceId"], "echo-1")
        self.assertEqual(actual["Data"], {"Value": "1"})
        self.assertEqual(self.sent_response().status, ResponseStatus.SUCCESS)

    def test__handler__reports_exception_as_failure(self):
        event = custom_resource_event(
            "Update", {"Fail": True}, physical_resource_id="echo-1", resource_type="Custom::Echo"
        )

        actual = self.handler(event, self.context)

        self.assertEqual(actual["Status"], "FAILED")
        self.assertEqual(actual["Reason"], "echo failed")
        self.assertEqual(actual["PhysicalResourceId"], "echo-1")
        self.assertEqual(self.sent_response().reason, "echo failed")

    def test__handler__failure_without_physical_id_uses_log_stream(self):
        event = custom_resource_event("Create", {"Fail": True}, resource_type="Custom::Echo")
        context = self.context

        actual = self.handler(event, context)

        self.assertEqual(actual["PhysicalResourceId"], context.log_stream_name)

    def test__process__records_outcome_metrics(self):
        handler = EchoHandler()
        handler.context = self.context
        handler.metrics = mock.MagicMock()
        request = CustomResourceRequest.from_dict(
            custom_resource_event("Delete", {"Fail": True}, physical_resource_id="echo-1")
        )

        response = handler.process(request)

        self.assertEqual(response.status, ResponseStatus.FAILED)
        handler.metrics.add_failure_metric.assert_called_once_with("Delete")
        handler.metrics.add_success_metric.assert_not_called()
        handler.metrics.add_duration_metric.assert_called_once()

from dataclasses import dataclass
from test.cfn_container_image_provider.base import LambdaHandlerTestCase

from aibs_informatics_core.models.base import IntegerField, SchemaModel, custom_field

from cfn_container_image_provider.common.handler import LambdaHandler, LambdaHandlerType


@dataclass
class CounterRequest(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


@dataclass
class CounterResponse(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


class CounterHandler(LambdaHandler[CounterRequest, CounterResponse]):
    def handle(self, request: CounterRequest) -> CounterResponse:
        self.metrics.add_success_metric("Count")
        return CounterResponse(request.count + 1)


class SilentCounterHandler(LambdaHandler[CounterRequest, CounterResponse]):
    def handle(self, request: CounterRequest) -> None:  # type: ignore[override]
        self.log.info(f"Count is {request.count}")


class LambdaHandlerTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return CounterHandler.get_handler()

    def test__props__work(self):
        obj_handler = CounterHandler()
        self.assertEqual(obj_handler.env_base, self.env_base)
        self.assertEqual(obj_handler.handler_name(), "CounterHandler")
        obj_handler.context

    def test__handler__handles_valid_request_and_returns_response(self):
        self.assertHandles(self.handler, CounterRequest(1).to_dict(), CounterResponse(2).to_dict())

    def test__handler__returns_none_without_response(self):
        self.assertHandles(SilentCounterHandler.get_handler(), CounterRequest(1).to_dict(), None)

    def test__handler__handles_invalid_request_and_raises_error(self):
        with self.assertRaises(Exception):
            self.handler({"counts": 1}, self.context)

    def test__process__calls_handle(self):
        self.assertEqual(CounterHandler().process(CounterRequest(4)), CounterResponse(5))

    def test__get_deadline__from_context(self):
        obj_handler = CounterHandler()
        obj_handler.context = self.context
        deadline = obj_handler.get_deadline(margin=15)
        self.assertAlmostEqual(deadline.remaining, 285, delta=1)

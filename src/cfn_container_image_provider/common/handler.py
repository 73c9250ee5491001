import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from aibs_informatics_core.executors.base import BaseExecutor
from aibs_informatics_core.models.base import ModelProtocol
from aibs_informatics_core.utils.json import JSON
from aws_lambda_powertools.utilities.typing import LambdaContext

from cfn_container_image_provider.common.base import HandlerMixins
from cfn_container_image_provider.common.config import ProviderConfig
from cfn_container_image_provider.common.logging import LoggingMixins
from cfn_container_image_provider.common.metrics import MetricsMixins

LambdaEvent = Union[JSON]  # type: ignore # https://github.com/python/mypy/issues/7866
LambdaHandlerType = Callable[[LambdaEvent, LambdaContext], Optional[JSON]]
logger = logging.getLogger(__name__)

REQUEST = TypeVar("REQUEST", bound=ModelProtocol)
RESPONSE = TypeVar("RESPONSE", bound=ModelProtocol)


@dataclass  # type: ignore[misc] # mypy #5374
class LambdaHandler(
    LoggingMixins,
    MetricsMixins,
    HandlerMixins,
    BaseExecutor[REQUEST, RESPONSE],
    Generic[REQUEST, RESPONSE],
):
    """Base class of strongly-typed AWS Lambda handlers.

    A handler deserializes the event into a REQUEST, handles it and serializes
    the RESPONSE it returns. Logging and metrics go through AWS Lambda
    Powertools; metrics are flushed at the end of every invocation.

    Example:
        ```python
        class MyHandler(LambdaHandler[MyRequest, MyResponse]):
            def handle(self, request: MyRequest) -> MyResponse:
                return MyResponse(message=f"Hello, {request.name}!")

        handler = MyHandler.get_handler()
        ```
    """

    def __post_init__(self):
        self.context = LambdaContext()
        super().__post_init__()

    def process(self, request: REQUEST) -> Optional[RESPONSE]:
        """Run a deserialized request. Calls `handle` unless overridden."""
        return self.handle(request=request)

    @classmethod
    def get_handler(cls, *args, **kwargs) -> LambdaHandlerType:
        """Create the Lambda function entrypoint of this handler class.

        Every invocation instantiates the class with the given arguments,
        deserializes the event, calls `process` and serializes its response.

        Args:
            *args: Positional arguments passed to the handler constructor.
            **kwargs: Keyword arguments passed to the handler constructor.
        """
        logger = cls.get_logger(service=cls.service_name(), add_to_root=False)
        metrics = cls.get_metrics(
            service=cls.service_name(), namespace=ProviderConfig().metrics_namespace
        )

        @logger.inject_lambda_context(log_event=True)
        @metrics.log_metrics
        def handler(event: LambdaEvent, context: LambdaContext) -> Optional[JSON]:
            lambda_handler = cls(*args, **kwargs)  # type: ignore[call-arg]
            logger.info(f"Instantiated {lambda_handler}.")
            lambda_handler.log = logger
            lambda_handler.metrics = metrics
            lambda_handler.context = context
            lambda_handler.add_logger_to_root()

            request = lambda_handler.deserialize_request(event)

            lambda_handler.log.info("Event successfully deserialized. Calling handler...")
            response = lambda_handler.process(request)

            lambda_handler.log.info(
                f"Handler completed and returned following response: {response}"
            )
            if response:
                return lambda_handler.serialize_response(response)
            return None

        return handler

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"request: {self.get_request_cls()}, "
            f"response: {self.get_response_cls()}"
            ")"
        )

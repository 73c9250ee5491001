from aws_lambda_powertools.utilities.typing import LambdaContext

from cfn_container_image_provider.common.deadline import Deadline

CONTEXT_ATTR = "_context"


class HandlerMixins:
    """Access to the invocation context shared by all handlers.

    Attributes:
        context: The AWS Lambda context object of the current invocation.
    """

    @property
    def context(self) -> LambdaContext:
        if not hasattr(self, CONTEXT_ATTR):
            raise ValueError(f"{self.__class__.__name__} has no invocation context")
        return getattr(self, CONTEXT_ATTR)

    @context.setter
    def context(self, value: LambdaContext):
        setattr(self, CONTEXT_ATTR, value)

    def get_deadline(self, margin: float = 0.0) -> Deadline:
        """Deadline of the current invocation, keeping `margin` seconds in reserve.

        Without a context reporting its remaining time there is no deadline.
        """
        try:
            return Deadline.from_context(self.context, margin=margin)
        except (AttributeError, TypeError, ValueError):
            return Deadline()

    @classmethod
    def handler_name(cls) -> str:
        return cls.__name__

    @classmethod
    def service_name(cls) -> str:
        """Service name used for logging and metrics."""
        return cls.__name__

"""Structured logging for the provider's Lambda handlers.

Handlers log through an AWS Lambda Powertools `Logger`. Its handler is also
attached to the root logger so that the registry and ECR modules, which log
through the standard `logging` module, emit the same JSON records.
"""

import logging
from typing import Optional, Union

from aibs_informatics_core.utils.logging import get_all_handlers
from aws_lambda_powertools.logging import Logger

from cfn_container_image_provider.common.base import HandlerMixins

SERVICE_NAME = "cfn-container-image-provider"


class LoggingMixins(HandlerMixins):
    """Mixin giving a handler a structured Powertools logger.

    Attributes:
        log: Alias of `logger`.
        logger: The Powertools `Logger` of the handler, created on first use.
    """

    @property
    def log(self) -> Logger:
        """Alias of `logger`.

        Returns:
            The handler's Logger.
        """
        return self.logger

    @log.setter
    def log(self, value: Logger):
        """Replace the handler's logger.

        Args:
            value (Logger): Logger used from now on.
        """
        self.logger = value

    @property
    def logger(self) -> Logger:
        """The handler's logger, created for the service on first access.

        Returns:
            The handler's Logger.
        """
        try:
            return self._logger
        except AttributeError:
            self.logger = self.get_logger(self.service_name())
        return self.logger

    @logger.setter
    def logger(self, value: Logger):
        """Replace the handler's logger.

        Args:
            value (Logger): Logger used from now on.
        """
        self._logger = value

    @classmethod
    def get_logger(cls, service: Optional[str] = None, add_to_root: bool = False) -> Logger:
        """Create a Powertools logger for this handler class.

        Args:
            service (Optional[str]): Service name. Defaults to the provider's service name.
            add_to_root (bool): Whether to attach the logger's handler to the root logger.

        Returns:
            A new Logger.
        """
        return get_service_logger(service=service, add_to_root=add_to_root)

    def add_logger_to_root(self):
        """Attach the handler's logger to the root logger.

        Records of the registry and ECR modules then share the handler's
        JSON format and Lambda context fields.
        """
        add_handler_to_logger(self.logger, None)


def get_service_logger(
    service: Optional[str] = None, child: bool = False, add_to_root: bool = False
) -> Logger:
    """Create a Powertools logger for a service.

    Args:
        service (Optional[str]): Service name. Defaults to the provider's service name.
        child (bool): Whether to create a child logger sharing its parent's handler.
        add_to_root (bool): Whether to attach the logger's handler to the root logger.

    Returns:
        A new Logger.
    """
    service_logger = Logger(service=service or SERVICE_NAME, child=child)
    if add_to_root:
        add_handler_to_logger(service_logger)
    return service_logger


def add_handler_to_logger(
    source_logger: Logger, target_logger: Union[str, logging.Logger, None] = None
):
    """Attach the handler of a Powertools logger to another logger.

    Args:
        source_logger (Logger): Logger whose handler is attached.
        target_logger (Union[str, logging.Logger, None]): Logger or logger name
            receiving the handler. None means the root logger, whose level is
            lowered to the source logger's level if needed.
    """
    handler = source_logger.registered_handler

    if target_logger is None or isinstance(target_logger, str):
        target_logger = logging.getLogger(target_logger)
        target_logger.setLevel(min(source_logger.log_level, target_logger.getEffectiveLevel()))

    if handler not in get_all_handlers(target_logger):
        target_logger.addHandler(handler)

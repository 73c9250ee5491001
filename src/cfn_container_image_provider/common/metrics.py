"""CloudWatch metrics for the provider's Lambda handlers.

Every lifecycle request records `<RequestType>Success`, `<RequestType>Failure`
and `<RequestType>Duration` through AWS Lambda Powertools.
"""

from datetime import datetime
from typing import Optional, Union

from aws_lambda_powertools.metrics import EphemeralMetrics, Metrics, MetricUnit

from cfn_container_image_provider.common.base import HandlerMixins


def add_duration_metric(
    start: datetime,
    end: Optional[datetime] = None,
    name: str = "",
    metrics: Optional[Union[EphemeralMetrics, Metrics]] = None,
):
    """Record the time from `start` to `end` as `{name}Duration`.

    Args:
        start (datetime): When the measured operation started.
        end (Optional[datetime]): When it ended. Defaults to now.
        name (str): Prefix of the metric name.
        metrics (Optional[Union[EphemeralMetrics, Metrics]]): Collector receiving
            the metric. An ephemeral one is created if None.
    """
    end = end or datetime.now(start.tzinfo)
    if metrics is None:
        metrics = EphemeralMetrics()
    metrics.add_metric(
        name=f"{name}Duration",
        unit=MetricUnit.Milliseconds,
        value=(end - start).total_seconds() * 1000,
    )


def add_outcome_metric(
    succeeded: bool, name: str = "", metrics: Optional[Union[EphemeralMetrics, Metrics]] = None
):
    """Record `{name}Success` and `{name}Failure` as a complementary pair of counts.

    Args:
        succeeded (bool): Outcome of the operation.
        name (str): Prefix of the metric names.
        metrics (Optional[Union[EphemeralMetrics, Metrics]]): Collector receiving
            the metrics. An ephemeral one is created if None.
    """
    if metrics is None:
        metrics = EphemeralMetrics()
    metrics.add_metric(name=f"{name}Success", unit=MetricUnit.Count, value=int(succeeded))
    metrics.add_metric(name=f"{name}Failure", unit=MetricUnit.Count, value=int(not succeeded))


class EnhancedMetrics(Metrics):
    """Powertools `Metrics` with helpers for outcome and duration metrics."""

    def add_duration_metric(self, start: datetime, end: Optional[datetime] = None, name: str = ""):
        """Record a `{name}Duration` metric.

        Args:
            start (datetime): When the measured operation started.
            end (Optional[datetime]): When it ended. Defaults to now.
            name (str): Prefix of the metric name.
        """
        add_duration_metric(start=start, end=end, name=name, metrics=self)

    def add_success_metric(self, name: str = ""):
        """Record a successful operation.

        Args:
            name (str): Prefix of the metric names.
        """
        add_outcome_metric(True, name=name, metrics=self)

    def add_failure_metric(self, name: str = ""):
        """Record a failed operation.

        Args:
            name (str): Prefix of the metric names.
        """
        add_outcome_metric(False, name=name, metrics=self)


class MetricsMixins(HandlerMixins):
    """Mixin giving a handler a Powertools metrics collector.

    Metrics are published to CloudWatch when `log_metrics` flushes them at
    the end of the invocation.
    """

    @property
    def metrics(self) -> EnhancedMetrics:
        """The handler's metrics collector, created for the service on first access.

        Returns:
            The handler's EnhancedMetrics.
        """
        try:
            return self._metrics
        except AttributeError:
            self.metrics = self.get_metrics(service=self.service_name())
        return self.metrics

    @metrics.setter
    def metrics(self, value: EnhancedMetrics):
        """Replace the handler's metrics collector.

        Args:
            value (EnhancedMetrics): Collector used from now on.
        """
        self._metrics = value

    @classmethod
    def get_metrics(
        cls,
        service: Optional[str] = None,
        namespace: Optional[str] = None,
        **additional_dimensions: str,
    ) -> EnhancedMetrics:
        """Create a metrics collector.

        Args:
            service (Optional[str]): Value of the `service` dimension.
            namespace (Optional[str]): CloudWatch namespace. Defaults to the
                `POWERTOOLS_METRICS_NAMESPACE` environment variable.
            **additional_dimensions (str): Extra dimensions added to every metric.

        Returns:
            A new EnhancedMetrics.
        """
        metrics = EnhancedMetrics(service=service, namespace=namespace)
        for dimension_name, dimension_value in additional_dimensions.items():
            metrics.add_dimension(name=dimension_name, value=dimension_value)
        return metrics

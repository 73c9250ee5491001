"""Provider configuration.

All settings are read from environment variables of the Lambda function.
"""

from dataclasses import dataclass, field

from aibs_informatics_core.utils.os_operations import get_env_var

REGISTRY_REQUEST_TIMEOUT_KEY = "REGISTRY_REQUEST_TIMEOUT"
CFN_RESPONSE_TIMEOUT_KEY = "CFN_RESPONSE_TIMEOUT"
DEADLINE_MARGIN_SECONDS_KEY = "DEADLINE_MARGIN_SECONDS"
BLOB_SPOOL_MAX_SIZE_KEY = "BLOB_SPOOL_MAX_SIZE"
METRICS_NAMESPACE_KEY = "POWERTOOLS_METRICS_NAMESPACE"

DEFAULT_METRICS_NAMESPACE = "ContainerImageProvider"


@dataclass
class ProviderConfig:
    """Settings of the container image provider.

    Attributes:
        registry_request_timeout: Upper bound in seconds for a single registry call.
        response_timeout: Timeout in seconds for reporting the response to CloudFormation.
        deadline_margin: Seconds of the invocation reserved for reporting the response.
        blob_spool_max_size: Bytes of a blob held in memory before spooling to disk.
        metrics_namespace: CloudWatch metrics namespace.
    """

    registry_request_timeout: float = field(
        default_factory=lambda: float(
            get_env_var(REGISTRY_REQUEST_TIMEOUT_KEY, default_value="60")
        )
    )
    response_timeout: float = field(
        default_factory=lambda: float(get_env_var(CFN_RESPONSE_TIMEOUT_KEY, default_value="10"))
    )
    deadline_margin: float = field(
        default_factory=lambda: float(
            get_env_var(DEADLINE_MARGIN_SECONDS_KEY, default_value="15")
        )
    )
    blob_spool_max_size: int = field(
        default_factory=lambda: int(
            get_env_var(BLOB_SPOOL_MAX_SIZE_KEY, default_value=str(64 * 1024 * 1024))
        )
    )
    metrics_namespace: str = field(
        default_factory=lambda: get_env_var(
            METRICS_NAMESPACE_KEY, default_value=DEFAULT_METRICS_NAMESPACE
        )
    )

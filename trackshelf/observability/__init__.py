# noqa: D104 - package initialization
from .logging import configure_structured_logging  # noqa: F401
from .metrics import (  # noqa: F401
    metrics_blueprint,
    record_upload_attempt,
    record_upload_failure,
    record_upload_success,
)
from .tracing import init_tracing  # noqa: F401

"""OpenTelemetry instrumentation and structured logging for the ordering service."""

from table_ordering_service.observability.config import (
    ObservabilitySettings,
    configure_logging,
    setup_observability,
)
from table_ordering_service.observability.decorators import traced

__all__ = ["ObservabilitySettings", "setup_observability", "configure_logging", "traced"]

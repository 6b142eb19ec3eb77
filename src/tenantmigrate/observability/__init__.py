"""
Tracing for tenantmigrate.

``create_tracer`` hands out an OpenTelemetry-backed tracer when the optional
``telemetry`` extra is installed and a ``NullTracer`` otherwise. Span
attribute names live in :mod:`tenantmigrate.observability.attributes`.
"""

from tenantmigrate.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_FILE_COUNT,
    ATTR_FROM_ALIAS,
    ATTR_MODULE,
    ATTR_REGION,
    ATTR_REQUEST_ID,
    ATTR_ROW_COUNT,
    ATTR_TABLE,
    ATTR_TENANT_ID,
    ATTR_TO_ALIAS,
    ATTR_TOTAL_SIZE,
)
from tenantmigrate.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_FILE_COUNT",
    "ATTR_FROM_ALIAS",
    "ATTR_MODULE",
    "ATTR_REGION",
    "ATTR_REQUEST_ID",
    "ATTR_ROW_COUNT",
    "ATTR_TABLE",
    "ATTR_TENANT_ID",
    "ATTR_TO_ALIAS",
    "ATTR_TOTAL_SIZE",
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
]

"""Operation orchestration: audited execution, batches, health and actions."""

from modguard.orchestrator.health import HealthChecker
from modguard.orchestrator.models import (
    BatchItemResult,
    BatchResult,
    BatchSummary,
    HealthReport,
    HealthStatus,
    OperationContext,
    OperationResult,
    ServiceHealth,
)
from modguard.orchestrator.orchestrator import OperationOrchestrator

__all__ = [
    "BatchItemResult",
    "BatchResult",
    "BatchSummary",
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "OperationContext",
    "OperationOrchestrator",
    "OperationResult",
    "ServiceHealth",
]

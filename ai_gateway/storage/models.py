"""
Data models for storage layer.

Defines the cost ledger entities.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ai_gateway.core.usage import OperationKind


@dataclass(frozen=True)
class CostEntry:
    """Immutable record of one metered operation.

    Append-only entries that form the auditable ledger of inference costs.
    Once written, these records are never modified; only the retention
    sweep removes them.
    """
    timestamp: datetime
    model_id: str
    operation: OperationKind
    input_units: int
    output_units: int
    image_count: int
    estimated_cost: float
    request_id: str
    user_id: Optional[str] = None

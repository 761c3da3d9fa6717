"""
Usage counting for metered operations.

Holds the unit counts a model family reports for one invocation.
"""

from dataclasses import dataclass
from enum import Enum


class OperationKind(Enum):
    """Kinds of metered operations."""
    TEXT = "text"
    IMAGE = "image"
    EMBEDDING = "embedding"


@dataclass(frozen=True)
class UsageCounts:
    """Usage extracted from a model response.

    Contains exact counts as reported by the provider, zero when absent.
    """
    input_units: int = 0
    output_units: int = 0
    image_count: int = 0

    @property
    def total_units(self) -> int:
        """Total token units (input + output)."""
        return self.input_units + self.output_units

"""
Gateway error taxonomy.

Admission and validation errors fail fast before any external call.
Invocation failures are retried and surface only once every attempt
against the primary and fallback models is exhausted.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class AdmissionDenied(GatewayError):
    """Raised when the daily or monthly budget is already exhausted."""

    def __init__(self, daily_ok: bool, monthly_ok: bool):
        exhausted = []
        if not daily_ok:
            exhausted.append("daily")
        if not monthly_ok:
            exhausted.append("monthly")
        super().__init__(
            f"Cost limits exceeded ({', '.join(exhausted)}). "
            "Cannot make inference request."
        )
        self.daily_ok = daily_ok
        self.monthly_ok = monthly_ok


class DimensionMismatch(GatewayError, ValueError):
    """Raised when comparing vectors of unequal length."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must have the same length: {left} != {right}")
        self.left = left
        self.right = right


class ValidationError(GatewayError, ValueError):
    """Raised for malformed input, always before any external call."""


class InvocationExhausted(GatewayError):
    """Raised when every attempt against every configured model failed.

    ``last_error`` is the terminal error of the last model tried: the
    fallback's when a fallback ran, otherwise the primary's.
    """

    def __init__(self, model_id: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(
            f"Invocation of {model_id} failed after {attempts} attempt(s): {last_error}"
        )
        self.model_id = model_id
        self.attempts = attempts
        self.last_error = last_error


class EmptyOutput(GatewayError):
    """Raised when a model answers without usable output.

    Counts as a failed attempt, so it is retried and can trigger the
    fallback model like any transport failure.
    """

    def __init__(self, model_id: str):
        super().__init__(f"Model {model_id} returned no usable output")
        self.model_id = model_id

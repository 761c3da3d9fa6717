"""
Invocation orchestration.

One call contract over the cache, the budget admission check, the model
adapters, the retry policy and primary/fallback substitution.

Order of operations for ``invoke``:
1. Cache lookup on the primary model's payload (hits skip everything else)
2. Admission control against the cost ledger
3. Primary model, with retries
4. Fallback model, with retries, if the primary is exhausted
5. Cost recording and cache write on success
"""

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .adapters import GenerationRequest, ModelAdapter, resolve_adapter
from .cache import CacheEntry, ResponseCache, make_cache_key
from .errors import AdmissionDenied, EmptyOutput, InvocationExhausted, ValidationError
from .families import ModelSelector, ModelSpec
from .ledger import CostLedger
from .retry import RetryPolicy
from .usage import OperationKind, UsageCounts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvocationOptions:
    use_cache: bool = True
    retry_on_failure: bool = True
    user_id: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class InvocationResponse:
    """Model-independent result of one invocation."""
    data: Any
    output: Any
    model_id: str
    request_id: str
    cached: bool
    cost: float
    input_units: Optional[int] = None
    output_units: Optional[int] = None
    image_count: Optional[int] = None


@dataclass(frozen=True)
class _CachedResult:
    data: Any
    output: Any
    model_id: str
    usage: UsageCounts


def _is_retryable(error: Exception) -> bool:
    return not isinstance(error, (ValidationError, AdmissionDenied))


class InvocationOrchestrator:
    """Brokers every call to the external inference API.

    Instances are constructed once at process start with explicit
    collaborators and shared by reference; no state is global.

    Ledger calls run through ``asyncio.to_thread`` so a sqlite-backed store
    never blocks the event loop; budget alert callbacks fire on that worker
    thread.
    """

    def __init__(
        self,
        client,
        ledger: CostLedger,
        cache: ResponseCache,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            client: Transport implementing ``InferenceClient``
            ledger: Cost ledger for admission control and recording
            cache: Response cache
            retry_policy: Backoff policy, defaults to ``RetryPolicy()``
            sleep: Awaitable sleep used between retries
        """
        self.client = client
        self.ledger = ledger
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def invoke(
        self,
        kind: OperationKind,
        selector: ModelSelector,
        request: GenerationRequest,
        options: Optional[InvocationOptions] = None,
    ) -> InvocationResponse:
        """Invoke a model with caching, admission control, retry and fallback.

        Args:
            kind: Operation kind; must match the selected models' families
            selector: Primary model and optional fallback
            request: Model-independent request
            options: Cache, retry and attribution options

        Returns:
            InvocationResponse, ``cached=True`` when served from the cache

        Raises:
            ValidationError: If the request is malformed
            AdmissionDenied: If the daily or monthly budget is exhausted
            InvocationExhausted: If the primary (and fallback) exhausted retries
        """
        options = options or InvocationOptions()
        request_id = options.request_id or str(uuid.uuid4())

        if not request.prompt or not request.prompt.strip():
            raise ValidationError("Prompt is required and cannot be empty")

        primary_adapter = self._adapter_for(selector.primary, kind)
        fallback_adapter = None
        if selector.fallback is not None:
            fallback_adapter = self._adapter_for(selector.fallback, kind)

        primary_payload = primary_adapter.build_payload(request, selector.primary.parameters)
        cache_key = make_cache_key(selector.primary.model_id, primary_payload)

        if options.use_cache:
            entry = self.cache.get(cache_key)
            if entry is not None:
                logger.debug(
                    "Cache hit for request %s on %s", request_id, selector.primary.model_id
                )
                return self._from_cache(entry, request_id)

        status = await asyncio.to_thread(self.ledger.is_within_limits)
        if not status.ok:
            raise AdmissionDenied(daily_ok=status.daily, monthly_ok=status.monthly)

        try:
            return await self._invoke_model(
                kind, selector.primary, primary_adapter, primary_payload,
                request_id, options, cache_key,
            )
        except InvocationExhausted as primary_error:
            if selector.fallback is None:
                raise
            logger.warning(
                "Primary model %s failed for request %s: %s. Attempting fallback model %s",
                selector.primary.model_id, request_id, primary_error.last_error,
                selector.fallback.model_id,
            )

        fallback_payload = fallback_adapter.build_payload(request, selector.fallback.parameters)
        try:
            return await self._invoke_model(
                kind, selector.fallback, fallback_adapter, fallback_payload,
                request_id, options, cache_key,
            )
        except InvocationExhausted as fallback_error:
            logger.error(
                "Fallback model %s also failed for request %s: %s",
                selector.fallback.model_id, request_id, fallback_error.last_error,
            )
            raise

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    @staticmethod
    def _adapter_for(spec: ModelSpec, kind: OperationKind) -> ModelAdapter:
        adapter = resolve_adapter(spec.family)
        if adapter.operation != kind:
            raise ValidationError(
                f"Model {spec.model_id} ({spec.family.value}) does not support "
                f"{kind.value} operations"
            )
        return adapter

    async def _invoke_model(
        self,
        kind: OperationKind,
        spec: ModelSpec,
        adapter: ModelAdapter,
        payload: Dict[str, Any],
        request_id: str,
        options: InvocationOptions,
        cache_key: str,
    ) -> InvocationResponse:
        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            response = await self.client.invoke(spec.model_id, payload, spec.family)
            output = adapter.extract_output(response)
            if not adapter.has_output(output):
                raise EmptyOutput(spec.model_id)
            return response, output

        start_time = time.monotonic()
        try:
            if options.retry_on_failure:
                response, output = await self.retry_policy.execute(
                    attempt, sleep=self._sleep, is_retryable=_is_retryable
                )
            else:
                response, output = await attempt()
        except Exception as e:
            raise InvocationExhausted(spec.model_id, attempts, e) from e
        duration = time.monotonic() - start_time

        usage = adapter.extract_usage(response)

        entry = await asyncio.to_thread(
            self.ledger.record,
            model_id=spec.model_id,
            operation=kind,
            input_units=usage.input_units,
            output_units=usage.output_units,
            image_count=usage.image_count,
            request_id=request_id,
            user_id=options.user_id,
        )

        if options.use_cache:
            self.cache.set(
                cache_key,
                _CachedResult(
                    data=copy.deepcopy(response),
                    output=copy.deepcopy(output),
                    model_id=spec.model_id,
                    usage=usage,
                ),
                entry.estimated_cost,
            )

        logger.info(
            "Model %s invoked successfully for request %s "
            "(input=%d output=%d images=%d cost=%.6f duration=%.3fs attempts=%d)",
            spec.model_id, request_id, usage.input_units, usage.output_units,
            usage.image_count, entry.estimated_cost, duration, attempts,
        )

        return InvocationResponse(
            data=response,
            output=output,
            model_id=spec.model_id,
            request_id=request_id,
            cached=False,
            cost=entry.estimated_cost,
            input_units=usage.input_units,
            output_units=usage.output_units,
            image_count=usage.image_count,
        )

    @staticmethod
    def _from_cache(entry: CacheEntry, request_id: str) -> InvocationResponse:
        result: _CachedResult = entry.payload
        return InvocationResponse(
            data=copy.deepcopy(result.data),
            output=copy.deepcopy(result.output),
            model_id=result.model_id,
            request_id=request_id,
            cached=True,
            cost=entry.cached_cost,
            input_units=result.usage.input_units,
            output_units=result.usage.output_units,
            image_count=result.usage.image_count,
        )

"""
Adaptive retry executor.

Runs an async operation against a named endpoint, retrying failures with
delays computed from the error category and the endpoint's learned
history, behind a per-endpoint circuit breaker.
"""

import asyncio
import functools
import inspect
import logging
import random
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..classifier import DefaultClassifier, ErrorClassifier, as_classifier, extract_status_code
from ..config import AlgorithmConfig, CircuitBreakerConfig
from ..errors import CircuitOpenError, OperationTimeoutError
from ..monitoring.metrics import RetryMetrics
from ..storage.base import StorageAdapter
from ..types import ErrorCategory, RetryInfo, RetryResult
from .calculator import DelayCalculator
from .circuit_breaker import CircuitBreaker, CircuitBreakerStatus
from .stats import EndpointStatistics, StatisticsStore


logger = logging.getLogger(__name__)

Operation = Callable[[], Union[Awaitable[Any], Any]]
RetryObserver = Callable[[RetryInfo], Any]


class AdaptiveRetry:
    """
    Retry executor that learns per-endpoint behaviour.

    One instance is meant to be shared by the whole application so every
    call to an endpoint contributes to (and benefits from) the same
    statistics and circuit breaker.

    Example:
        >>> retry = AdaptiveRetry(storage=FileStorage("retry-stats.json"))
        >>> await retry.load_from_storage()
        >>> outcome = await retry.execute(lambda: client.get_user(42), "users-api")
        >>> outcome.result
    """

    def __init__(
        self,
        config: Optional[Union[AlgorithmConfig, Dict[str, Any]]] = None,
        circuit_breaker_config: Optional[Union[CircuitBreakerConfig, Dict[str, Any]]] = None,
        use_circuit_breaker: bool = True,
        storage: Optional[StorageAdapter] = None,
        classifier: Optional[Union[ErrorClassifier, Callable]] = None,
        metrics: Optional[RetryMetrics] = None,
        save_debounce_ms: float = 1000,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize adaptive retry executor.

        Args:
            config: Algorithm configuration or overrides
            circuit_breaker_config: Breaker thresholds shared by all endpoints
            use_circuit_breaker: Default for calls that do not say otherwise
            storage: Optional persistence for learned statistics
            classifier: Default error classifier
            metrics: Retry metrics (a private instance is created if omitted)
            save_debounce_ms: Debounce window for persistence writes
            clock: Wall clock in seconds
            rng: Random source for jitter
        """
        if isinstance(circuit_breaker_config, dict):
            circuit_breaker_config = CircuitBreakerConfig(**circuit_breaker_config)

        self.stats = StatisticsStore(config, storage, save_debounce_ms, clock)
        self.calculator = DelayCalculator(self.stats.config, rng)
        self.circuit_breaker_config = circuit_breaker_config or CircuitBreakerConfig()
        self.use_circuit_breaker = use_circuit_breaker
        self.classifier = as_classifier(classifier) or DefaultClassifier()
        self._clock = clock

        self._breakers: Dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.RLock()

        self.metrics = metrics or RetryMetrics()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.flush()

    async def execute(
        self,
        operation: Operation,
        endpoint: str,
        max_retries: int = 5,
        timeout_ms: Optional[float] = 30000,
        use_circuit_breaker: Optional[bool] = None,
        on_retry: Optional[RetryObserver] = None,
        classifier: Optional[Union[ErrorClassifier, Callable]] = None
    ) -> RetryResult:
        """
        Execute an operation with adaptive retries.

        Args:
            operation: Zero-argument callable returning an awaitable
            endpoint: Identifier whose statistics and breaker this call uses
            max_retries: Total attempt budget, including the first attempt
            timeout_ms: Per-attempt time limit (None disables it)
            use_circuit_breaker: Override the instance default
            on_retry: Observer notified before each wait (sync or async)
            classifier: Override the instance classifier for this call

        Returns:
            RetryResult with the operation's value and attempt count

        Raises:
            CircuitOpenError: The endpoint's breaker rejected an attempt
            Exception: The last failure, unchanged, once retrying stops
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        active_classifier = as_classifier(classifier) or self.classifier
        if use_circuit_breaker is None:
            use_circuit_breaker = self.use_circuit_breaker
        breaker = self._get_breaker(endpoint) if use_circuit_breaker else None

        start_time = self._clock()

        for attempt in range(1, max_retries + 1):
            if breaker is not None and not breaker.can_attempt():
                remaining = breaker.get_status().time_until_retry or 0
                self.metrics.record_rejection(endpoint)
                logger.warning(f"Circuit open for '{endpoint}', rejecting attempt {attempt}")
                raise CircuitOpenError(endpoint, remaining)

            self.metrics.record_attempt(endpoint)

            try:
                result = await self._run_attempt(operation, timeout_ms)
            except Exception as error:
                category = self._classify(active_classifier, error)
                self.stats.record_failure(endpoint, category)
                if breaker is not None:
                    breaker.record_failure()

                decision = self.calculator.calculate(category, attempt, self.stats, endpoint)

                if not decision.should_retry or attempt == max_retries:
                    self.stats.record_exhausted(endpoint)
                    self.metrics.record_exhausted(endpoint, category)
                    logger.warning(
                        f"Giving up on '{endpoint}' after {attempt} attempts "
                        f"({category.value}): {error}"
                    )
                    raise

                info = RetryInfo(
                    attempt=attempt,
                    delay=decision.delay,
                    error=error,
                    factors=decision.factors,
                    category=category,
                    success_probability=decision.factors.success_probability,
                )
                self.metrics.record_retry(endpoint, info)
                logger.warning(
                    f"Attempt {attempt}/{max_retries} for '{endpoint}' failed ({category.value}): "
                    f"{error}. Retrying in {decision.delay}ms"
                )

                if on_retry is not None:
                    await self._notify(on_retry, info)

                await asyncio.sleep(decision.delay / 1000)
                continue

            elapsed_ms = (self._clock() - start_time) * 1000
            self.stats.record_success(endpoint, attempt, elapsed_ms if attempt > 1 else None)
            if breaker is not None:
                breaker.record_success()
            self.metrics.record_success(endpoint)

            if attempt > 1:
                logger.info(f"Operation on '{endpoint}' succeeded on attempt {attempt}")

            return RetryResult(result=result, attempts=attempt, total_time=elapsed_ms, endpoint=endpoint)

        # The final attempt either returns or raises
        raise AssertionError("unreachable")

    async def _run_attempt(self, operation: Operation, timeout_ms: Optional[float]) -> Any:
        """Invoke the operation once, bounded by the timeout."""
        outcome = operation()
        if not inspect.isawaitable(outcome):
            return outcome

        task = asyncio.ensure_future(outcome)
        timeout = timeout_ms / 1000 if timeout_ms is not None else None

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            raise OperationTimeoutError(timeout_ms)

        return task.result()

    def _classify(self, classifier: ErrorClassifier, error: BaseException) -> ErrorCategory:
        try:
            return classifier.classify(error, extract_status_code(error))
        except Exception as e:
            logger.error(f"Classifier {type(classifier).__name__} failed on {type(error).__name__}: {e}")
            return ErrorCategory.UNKNOWN

    async def _notify(self, on_retry: RetryObserver, info: RetryInfo) -> None:
        try:
            outcome = on_retry(info)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Retry observer failed on attempt {info.attempt}: {e}")

    def _get_breaker(self, endpoint: str) -> CircuitBreaker:
        with self._breakers_lock:
            breaker = self._breakers.get(endpoint)
            if breaker is None:
                breaker = CircuitBreaker(endpoint, self.circuit_breaker_config, self._clock)
                self._breakers[endpoint] = breaker
            return breaker

    # Introspection and administration

    def get_stats(self, endpoint: str) -> Optional[EndpointStatistics]:
        """Copy of an endpoint's learned statistics."""
        return self.stats.get_stats(endpoint)

    def list_tracked_endpoints(self) -> List[str]:
        return self.stats.get_endpoints()

    def get_circuit_breaker_status(self, endpoint: str) -> Optional[CircuitBreakerStatus]:
        """Breaker status, or None if the endpoint has no breaker yet."""
        with self._breakers_lock:
            breaker = self._breakers.get(endpoint)
        return breaker.get_status() if breaker is not None else None

    def reset_circuit_breaker(self, endpoint: str) -> bool:
        """Close an endpoint's breaker. Returns False if it has none."""
        with self._breakers_lock:
            breaker = self._breakers.get(endpoint)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def open_circuit_breaker(self, endpoint: str) -> None:
        """Force an endpoint's breaker open, creating it if needed."""
        self._get_breaker(endpoint).open()

    def update_config(self, **overrides) -> None:
        """Apply validated algorithm overrides to subsequent calculations."""
        self.calculator.update_config(**overrides)
        self.stats.set_config(self.calculator.config)

    async def clear(self, endpoint: str) -> None:
        """Forget one endpoint's statistics, breaker and metrics."""
        await self.stats.clear(endpoint)
        with self._breakers_lock:
            self._breakers.pop(endpoint, None)
        self.metrics.reset(endpoint)

    async def clear_all(self) -> None:
        """Forget all statistics, breakers and metrics."""
        await self.stats.clear_all()
        with self._breakers_lock:
            self._breakers.clear()
        self.metrics.reset()

    async def load_from_storage(self) -> int:
        """Load persisted statistics; returns the number of endpoints loaded."""
        return await self.stats.load_from_storage()

    async def flush(self) -> None:
        """Write pending statistics to storage."""
        await self.stats.flush()

    def get_metrics(self) -> Dict[str, Any]:
        """Retry metrics as a plain dict (totals and per-endpoint breakdown)."""
        return self.metrics.to_dict()


def with_adaptive_retry(retry: AdaptiveRetry, endpoint: str, **options):
    """
    Decorator routing every call of an async function through an executor.

    Args:
        retry: Shared executor
        endpoint: Endpoint identifier for the wrapped calls
        **options: Keyword arguments forwarded to ``AdaptiveRetry.execute``

    Returns:
        Decorator; the wrapped function returns the bare result
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            outcome = await retry.execute(lambda: func(*args, **kwargs), endpoint, **options)
            return outcome.result

        return wrapper

    return decorator

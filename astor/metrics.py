"""In-process metrics with Prometheus text exposition."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import sys
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Sequence, Union

from .errors import MonitoringError

try:
    import resource
except ImportError:  # not available on every platform
    resource = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

Number = Union[int, float]
Reader = Callable[[], float]

HTTP_DURATION_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0)


def _format_value(value: Number) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "+Inf" if value > 0 else "-Inf"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str) -> None:
        self.name = name
        self.help = help

    def _header(self) -> list[str]:
        return [f"# HELP {self.name} {self.help}", f"# TYPE {self.name} {self.kind}"]

    def expose(self) -> list[str]:
        raise NotImplementedError


class Counter(_Metric):
    """Monotonically increasing value."""

    kind = "counter"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self.value: Number = 0

    def inc(self, amount: Number = 1) -> None:
        if amount < 0:
            raise ValueError("counters can only be increased")
        self.value += amount

    def expose(self) -> list[str]:
        return [*self._header(), f"{self.name} {_format_value(self.value)}"]


class Gauge(_Metric):
    """Value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self.value: Number = 0

    def set(self, value: Number) -> None:
        self.value = value

    def inc(self) -> None:
        self.value += 1

    def dec(self) -> None:
        self.value -= 1

    def expose(self) -> list[str]:
        return [*self._header(), f"{self.name} {_format_value(self.value)}"]


class Histogram(_Metric):
    """Distribution of observations across fixed upper bounds."""

    kind = "histogram"

    def __init__(self, name: str, help: str, buckets: Sequence[float]) -> None:
        super().__init__(name, help)
        self.buckets = tuple(sorted(buckets))
        self.bucket_counts = [0] * len(self.buckets)
        self.sum = 0.0
        self.count = 0

    def observe(self, value: float) -> None:
        for index, bound in enumerate(self.buckets):
            if value <= bound:
                self.bucket_counts[index] += 1
        self.sum += value
        self.count += 1

    def expose(self) -> list[str]:
        lines = self._header()
        for bound, count in zip(self.buckets, self.bucket_counts):
            lines.append(f'{self.name}_bucket{{le="{_format_value(float(bound))}"}} {count}')
        lines.append(f'{self.name}_bucket{{le="+Inf"}} {self.count}')
        lines.append(f"{self.name}_sum {_format_value(float(self.sum))}")
        lines.append(f"{self.name}_count {self.count}")
        return lines


@dataclass
class MetricsConfig:
    collection_interval: float = 15.0


@dataclass(frozen=True)
class TransactionCreated:
    amount: int
    transaction_type: str


@dataclass(frozen=True)
class TransactionCompleted:
    amount: int
    duration_ms: int


@dataclass(frozen=True)
class TransactionFailed:
    reason: str


@dataclass(frozen=True)
class CurrencyIssued:
    amount: int
    issuer: str


@dataclass(frozen=True)
class AccountCreated:
    account_type: str


@dataclass(frozen=True)
class SecurityViolation:
    violation_type: str
    severity: str


@dataclass(frozen=True)
class ComplianceCheck:
    check_type: str
    result: bool


BusinessMetric = Union[
    TransactionCreated,
    TransactionCompleted,
    TransactionFailed,
    CurrencyIssued,
    AccountCreated,
    SecurityViolation,
    ComplianceCheck,
]


def _memory_usage_bytes() -> float:
    try:
        with open("/proc/self/statm", encoding="ascii") as statm:
            resident_pages = int(statm.read().split()[1])
        return float(resident_pages * os.sysconf("SC_PAGE_SIZE"))
    except (OSError, ValueError, IndexError, AttributeError):
        pass
    if resource is None:
        raise OSError("memory usage is not available on this platform")
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return float(peak if sys.platform == "darwin" else peak * 1024)


class _CpuSampler:
    """Process CPU usage, in percent, since the previous sample."""

    def __init__(self) -> None:
        self._wall = time.monotonic()
        self._cpu = time.process_time()

    def __call__(self) -> float:
        wall, cpu = time.monotonic(), time.process_time()
        elapsed = wall - self._wall
        used = cpu - self._cpu
        self._wall, self._cpu = wall, cpu
        return 0.0 if elapsed <= 0 else used / elapsed * 100.0


class MetricsCollector:
    """Holds the system's metrics and samples resource usage periodically."""

    def __init__(
        self,
        config: Optional[MetricsConfig] = None,
        *,
        memory_reader: Optional[Reader] = None,
        cpu_reader: Optional[Reader] = None,
    ) -> None:
        self.config = config if config is not None else MetricsConfig()
        self._memory_reader = memory_reader or _memory_usage_bytes
        self._cpu_reader = cpu_reader or _CpuSampler()
        self._task: Optional[asyncio.Task[None]] = None

        self.http_requests_total = Counter(
            "astor_http_requests_total", "Total number of HTTP requests"
        )
        self.http_request_duration = Histogram(
            "astor_http_request_duration_seconds",
            "HTTP request duration in seconds",
            HTTP_DURATION_BUCKETS,
        )
        self.http_requests_in_flight = Gauge(
            "astor_http_requests_in_flight",
            "Number of HTTP requests currently being processed",
        )
        self.transactions_total = Counter(
            "astor_transactions_total", "Total number of transactions processed"
        )
        self.transactions_failed = Counter(
            "astor_transactions_failed_total", "Total number of failed transactions"
        )
        self.currency_issued_total = Counter(
            "astor_currency_issued_total", "Total amount of currency issued"
        )
        self.active_accounts = Gauge("astor_active_accounts", "Number of active accounts")
        self.database_connections = Gauge(
            "astor_database_connections", "Number of active database connections"
        )
        self.redis_connections = Gauge(
            "astor_redis_connections", "Number of active Redis connections"
        )
        self.memory_usage = Gauge("astor_memory_usage_bytes", "Memory usage in bytes")
        self.cpu_usage = Gauge("astor_cpu_usage_percent", "CPU usage percentage")
        self.failed_logins = Counter(
            "astor_failed_logins_total", "Total number of failed login attempts"
        )
        self.security_violations = Counter(
            "astor_security_violations_total", "Total number of security violations"
        )

        self._registry: tuple[_Metric, ...] = (
            self.http_requests_total,
            self.http_request_duration,
            self.http_requests_in_flight,
            self.transactions_total,
            self.transactions_failed,
            self.currency_issued_total,
            self.active_accounts,
            self.database_connections,
            self.redis_connections,
            self.memory_usage,
            self.cpu_usage,
            self.failed_logins,
            self.security_violations,
        )

    async def start_collection(self) -> None:
        """Sample memory and CPU now and then every collection interval."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._collect_loop())
        logger.info("Metrics collection started")

    async def stop_collection(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _collect_loop(self) -> None:
        while True:
            self._sample(self.memory_usage, self._memory_reader)
            self._sample(self.cpu_usage, self._cpu_reader)
            await asyncio.sleep(self.config.collection_interval)

    @staticmethod
    def _sample(gauge: Gauge, reader: Reader) -> None:
        try:
            gauge.set(reader())
        except (OSError, ValueError) as exc:
            logger.debug("Could not sample %s: %s", gauge.name, exc)

    async def record_business_metric(self, metric: BusinessMetric) -> None:
        if isinstance(metric, TransactionCreated):
            self.transactions_total.inc()
            logger.info(
                "Transaction created: %s ASTOR (%s)", metric.amount, metric.transaction_type
            )
        elif isinstance(metric, TransactionCompleted):
            self.http_request_duration.observe(metric.duration_ms / 1000.0)
            logger.info(
                "Transaction completed: %s ASTOR in %sms", metric.amount, metric.duration_ms
            )
        elif isinstance(metric, TransactionFailed):
            self.transactions_failed.inc()
            logger.warning("Transaction failed: %s", metric.reason)
        elif isinstance(metric, CurrencyIssued):
            try:
                self.currency_issued_total.inc(float(metric.amount))
            except ValueError as exc:
                raise MonitoringError(f"Invalid issued amount: {metric.amount}") from exc
            logger.info("Currency issued: %s ASTOR by %s", metric.amount, metric.issuer)
        elif isinstance(metric, AccountCreated):
            self.active_accounts.inc()
            logger.info("Account created: %s", metric.account_type)
        elif isinstance(metric, SecurityViolation):
            self.security_violations.inc()
            logger.warning(
                "Security violation: %s (%s)", metric.violation_type, metric.severity
            )
        elif isinstance(metric, ComplianceCheck):
            logger.info(
                "Compliance check: %s = %s", metric.check_type, str(metric.result).lower()
            )
        else:
            raise MonitoringError(f"Unknown business metric: {metric!r}")

    def record_http_request(
        self, method: str, path: str, status: int, duration: Union[float, timedelta]
    ) -> None:
        """Count a finished request; ``duration`` is in seconds or a timedelta."""
        seconds = (
            duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
        )
        self.http_requests_total.inc()
        self.http_request_duration.observe(seconds)
        logger.debug(
            "HTTP request completed: method=%s path=%s status=%s duration_ms=%d",
            method,
            path,
            status,
            int(seconds * 1000),
        )

    def inc_in_flight_requests(self) -> None:
        self.http_requests_in_flight.inc()

    def dec_in_flight_requests(self) -> None:
        self.http_requests_in_flight.dec()

    def export_metrics(self) -> str:
        """Return all metrics in the Prometheus text format."""
        lines = [line for metric in self._registry for line in metric.expose()]
        return "\n".join(lines) + "\n"

    def set_database_connections(self, count: int) -> None:
        self.database_connections.set(count)

    def set_redis_connections(self, count: int) -> None:
        self.redis_connections.set(count)

    def record_failed_login(self) -> None:
        self.failed_logins.inc()
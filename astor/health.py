"""Health checks for service components and overall system status."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

Probe = Callable[[], Awaitable[None]]
UsageReader = Callable[[], float]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_percent(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


class HealthStatus(enum.Enum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    UNHEALTHY = "Unhealthy"


@dataclass
class HealthCheckConfig:
    interval: float = 30.0
    checks: list[str] = field(
        default_factory=lambda: ["database", "redis", "disk_space", "memory"]
    )


@dataclass(frozen=True)
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: str
    duration_ms: int
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SystemHealth:
    status: HealthStatus
    checks: list[HealthCheckResult]
    uptime_seconds: int
    version: str
    timestamp: datetime


def _disk_usage_percent() -> float:
    usage = shutil.disk_usage(os.path.abspath(os.sep))
    return round(usage.used / usage.total * 100.0, 1)


def _memory_usage_percent() -> float:
    try:
        with open("/proc/meminfo", encoding="ascii") as meminfo:
            values = {}
            for line in meminfo:
                name, _, rest = line.partition(":")
                values[name] = int(rest.split()[0])
        total, available = values["MemTotal"], values["MemAvailable"]
    except (OSError, KeyError, ValueError, IndexError):
        total = os.sysconf("SC_PHYS_PAGES")
        available = os.sysconf("SC_AVPHYS_PAGES")
    return round((total - available) / total * 100.0, 1)


async def _simulated_connection(delay: float) -> None:
    await asyncio.sleep(delay)


class HealthChecker:
    """Runs component checks periodically and reports overall health."""

    def __init__(
        self,
        config: Optional[HealthCheckConfig] = None,
        *,
        probes: Optional[Mapping[str, Probe]] = None,
        disk_usage: Optional[UsageReader] = None,
        memory_usage: Optional[UsageReader] = None,
    ) -> None:
        self.config = config if config is not None else HealthCheckConfig()
        self._probes: dict[str, Probe] = {
            "database": lambda: _simulated_connection(0.010),
            "redis": lambda: _simulated_connection(0.005),
        }
        if probes:
            self._probes.update(probes)
        self._disk_usage = disk_usage or _disk_usage_percent
        self._memory_usage = memory_usage or _memory_usage_percent
        self._results: dict[str, HealthCheckResult] = {}
        self._start = time.monotonic()
        self._task: Optional[asyncio.Task[None]] = None

    async def start_checks(self) -> None:
        """Run the configured checks now and then every ``config.interval`` seconds."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._check_loop())
        logger.info("Health checks started")

    async def stop_checks(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _check_loop(self) -> None:
        while True:
            for name in self.config.checks:
                result = await self._run(name, "Unknown health check")
                self._results[name] = result
            await asyncio.sleep(self.config.interval)

    async def get_status(self) -> SystemHealth:
        """Combine the latest results: any unhealthy wins, then any degraded."""
        checks = list(self._results.values())
        statuses = {check.status for check in checks}
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY
        return SystemHealth(
            status=overall,
            checks=checks,
            uptime_seconds=int(time.monotonic() - self._start),
            version=VERSION,
            timestamp=_now(),
        )

    async def check_component(self, component: str) -> HealthCheckResult:
        return await self._run(component, "Unknown component")

    async def _run(self, name: str, unknown_message: str) -> HealthCheckResult:
        if name == "database":
            return await self._probe(name, "Database")
        if name == "redis":
            return await self._probe(name, "Redis")
        if name == "disk_space":
            return self._usage(name, "Disk", self._disk_usage)
        if name == "memory":
            return self._usage(name, "Memory", self._memory_usage)
        return HealthCheckResult(name, HealthStatus.UNHEALTHY, unknown_message, 0)

    async def _probe(self, name: str, label: str) -> HealthCheckResult:
        start = time.monotonic()
        try:
            await self._probes[name]()
        except Exception as exc:  # any failure of a probe means the component is down
            status = HealthStatus.UNHEALTHY
            message = f"{label} connection failed: {exc}"
        else:
            status = HealthStatus.HEALTHY
            message = f"{label} connection successful"
        duration_ms = int((time.monotonic() - start) * 1000)
        return HealthCheckResult(name, status, message, duration_ms)

    @staticmethod
    def _usage(name: str, label: str, reader: UsageReader) -> HealthCheckResult:
        start = time.monotonic()
        try:
            percent = reader()
        except (OSError, ValueError, ZeroDivisionError) as exc:
            status = HealthStatus.UNHEALTHY
            message = f"{label} usage unavailable: {exc}"
        else:
            shown = _format_percent(percent)
            if percent > 90.0:
                status, message = HealthStatus.UNHEALTHY, f"{label} usage critical: {shown}%"
            elif percent > 80.0:
                status, message = HealthStatus.DEGRADED, f"{label} usage high: {shown}%"
            else:
                status, message = HealthStatus.HEALTHY, f"{label} usage normal: {shown}%"
        duration_ms = int((time.monotonic() - start) * 1000)
        return HealthCheckResult(name, status, message, duration_ms)
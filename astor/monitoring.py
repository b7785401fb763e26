"""Monitoring system combining metrics, health checks and compliance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .compliance import ComplianceEvent, ComplianceMonitor
from .health import HealthCheckConfig, HealthChecker, SystemHealth
from .metrics import BusinessMetric, MetricsCollector, MetricsConfig

logger = logging.getLogger(__name__)


@dataclass
class MonitoringConfig:
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    health_check: HealthCheckConfig = field(default_factory=HealthCheckConfig)


class MonitoringSystem:
    """Owns the monitoring components and starts and stops them together."""

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        *,
        metrics: Optional[MetricsCollector] = None,
        health_checker: Optional[HealthChecker] = None,
        compliance_monitor: Optional[ComplianceMonitor] = None,
    ) -> None:
        self.config = config if config is not None else MonitoringConfig()
        self.metrics = metrics if metrics is not None else MetricsCollector(self.config.metrics)
        self.health_checker = (
            health_checker
            if health_checker is not None
            else HealthChecker(self.config.health_check)
        )
        self.compliance_monitor = (
            compliance_monitor if compliance_monitor is not None else ComplianceMonitor()
        )

    async def start(self) -> None:
        await self.metrics.start_collection()
        await self.health_checker.start_checks()
        await self.compliance_monitor.start_monitoring()
        logger.info("Monitoring system started successfully")

    async def stop(self) -> None:
        await self.compliance_monitor.stop_monitoring()
        await self.health_checker.stop_checks()
        await self.metrics.stop_collection()

    async def record_business_metric(self, metric: BusinessMetric) -> None:
        await self.metrics.record_business_metric(metric)

    async def record_compliance_event(self, event: ComplianceEvent) -> None:
        await self.compliance_monitor.record_event(event)

    async def get_health_status(self) -> SystemHealth:
        return await self.health_checker.get_status()
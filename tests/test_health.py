import asyncio

import pytest

from astor.health import HealthCheckConfig, HealthChecker, HealthStatus


def _fixed(value):
    return lambda: value


@pytest.mark.asyncio
async def test_disk_usage_normal_message():
    checker = HealthChecker(disk_usage=_fixed(45.0))
    result = await checker.check_component("disk_space")
    assert result.status is HealthStatus.HEALTHY
    assert result.message == "Disk usage normal: 45%"
    assert result.name == "disk_space"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "percent, status",
    [
        (80.0, HealthStatus.HEALTHY),
        (85.0, HealthStatus.DEGRADED),
        (90.0, HealthStatus.DEGRADED),
        (95.5, HealthStatus.UNHEALTHY),
    ],
)
async def test_memory_thresholds(percent, status):
    checker = HealthChecker(memory_usage=_fixed(percent))
    result = await checker.check_component("memory")
    assert result.status is status
    assert result.message.startswith("Memory usage ")


@pytest.mark.asyncio
async def test_usage_reader_failure_is_unhealthy():
    def broken():
        raise OSError("no data")

    checker = HealthChecker(memory_usage=broken)
    result = await checker.check_component("memory")
    assert result.status is HealthStatus.UNHEALTHY
    assert "no data" in result.message


@pytest.mark.asyncio
async def test_default_database_check_succeeds():
    result = await HealthChecker().check_component("database")
    assert result.status is HealthStatus.HEALTHY
    assert result.message == "Database connection successful"
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_failing_probe_is_unhealthy():
    async def down():
        raise ConnectionError("refused")

    checker = HealthChecker(probes={"redis": down})
    result = await checker.check_component("redis")
    assert result.status is HealthStatus.UNHEALTHY
    assert "refused" in result.message


@pytest.mark.asyncio
async def test_unknown_component():
    result = await HealthChecker().check_component("quantum")
    assert result.status is HealthStatus.UNHEALTHY
    assert result.message == "Unknown component"
    assert result.duration_ms == 0


@pytest.mark.asyncio
async def test_status_without_results_is_healthy():
    health = await HealthChecker().get_status()
    assert health.status is HealthStatus.HEALTHY
    assert health.checks == []
    assert health.version == "0.1.0"
    assert health.uptime_seconds >= 0


@pytest.mark.asyncio
async def test_background_checks_degraded_overall():
    config = HealthCheckConfig(interval=60, checks=["disk_space", "memory"])
    checker = HealthChecker(config, disk_usage=_fixed(10.0), memory_usage=_fixed(85.0))
    await checker.start_checks()
    await asyncio.sleep(0.05)
    await checker.stop_checks()
    health = await checker.get_status()
    assert health.status is HealthStatus.DEGRADED
    assert sorted(check.name for check in health.checks) == ["disk_space", "memory"]


@pytest.mark.asyncio
async def test_background_unknown_check_makes_system_unhealthy():
    config = HealthCheckConfig(interval=60, checks=["memory", "bogus"])
    checker = HealthChecker(config, memory_usage=_fixed(20.0))
    await checker.start_checks()
    await asyncio.sleep(0.05)
    await checker.stop_checks()
    health = await checker.get_status()
    assert health.status is HealthStatus.UNHEALTHY
    messages = {check.name: check.message for check in health.checks}
    assert messages["bogus"] == "Unknown health check"
"""Health check utilities for monitoring service health.

This module provides health check capabilities for the triage engine:
- Validate the loaded configuration
- Check classifier reachability
- Check direct-alert delivery configuration
- Generate health status reports

An unreachable or unconfigured classifier degrades the service rather than
breaking it: messages are still triaged by the rule-based fallback.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from notification_triage.utils.logging import LogEvent

if TYPE_CHECKING:
    from notification_triage.config.schema import TriageConfig
    from notification_triage.core.classification_client import ClassificationClient

log = structlog.get_logger()


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Overall health report."""

    healthy: bool
    status: HealthStatus
    timestamp: datetime
    checks: list[CheckResult]
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details,
                }
                for c in self.checks
            ],
            "details": self.details,
        }


def overall_status(checks: list[CheckResult]) -> HealthStatus:
    """Aggregate check results: any unhealthy check wins, then any non-healthy."""
    if all(c.status == HealthStatus.HEALTHY for c in checks):
        return HealthStatus.HEALTHY
    if any(c.status == HealthStatus.UNHEALTHY for c in checks):
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


class HealthChecker:
    """Performs health checks on the engine's dependencies.

    Example:
        checker = HealthChecker(config, client)
        report = await checker.run_all_checks()
        if report.healthy:
            print("All systems operational")
    """

    def __init__(
        self,
        config: TriageConfig,
        client: ClassificationClient | None = None,
    ) -> None:
        """Initialize the health checker.

        Args:
            config: Application configuration
            client: Classification client to probe (skipped if None)
        """
        self._config = config
        self._client = client

    async def run_all_checks(self) -> HealthReport:
        """Run all health checks and return a report."""
        log.info(LogEvent.HEALTH_CHECK_START)
        start_time = datetime.now(UTC)

        checks: list[CheckResult] = []

        results = await asyncio.gather(
            self._check_config(),
            self._check_classifier(),
            self._check_delivery(),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                checks.append(
                    CheckResult(
                        name="unknown",
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check failed with exception: {result}",
                    )
                )
            else:
                checks.append(result)

        status = overall_status(checks)
        healthy = status != HealthStatus.UNHEALTHY

        report = HealthReport(
            healthy=healthy,
            status=status,
            timestamp=start_time,
            checks=checks,
            details={
                "total_checks": len(checks),
                "healthy_checks": sum(1 for c in checks if c.status == HealthStatus.HEALTHY),
                "degraded_checks": sum(1 for c in checks if c.status == HealthStatus.DEGRADED),
                "unhealthy_checks": sum(1 for c in checks if c.status == HealthStatus.UNHEALTHY),
            },
        )

        log.info(
            LogEvent.HEALTH_CHECK_COMPLETE,
            healthy=healthy,
            status=status.value,
            checks_run=len(checks),
        )

        return report

    async def _check_config(self) -> CheckResult:
        """Check that the selected classifier provider has its section."""
        from notification_triage.config.loader import validate_config

        try:
            validate_config(self._config)
        except ValueError as e:
            return CheckResult(
                name="config",
                status=HealthStatus.UNHEALTHY,
                message=f"Configuration error: {e}",
            )

        return CheckResult(
            name="config",
            status=HealthStatus.HEALTHY,
            message="Configuration valid",
            details={
                "classifier_provider": self._config.classifier.provider,
                "max_retries": self._config.retry.max_retries,
                "max_concurrent": self._config.runtime.max_concurrent,
            },
        )

    async def _check_classifier(self) -> CheckResult:
        """Check that the remote classifier answers its health probe."""
        provider = self._config.classifier.provider
        if provider == "none":
            return CheckResult(
                name="classifier",
                status=HealthStatus.DEGRADED,
                message="No classifier configured; using rule-based fallback",
                details={"provider": provider},
            )

        if self._client is None:
            return CheckResult(
                name="classifier",
                status=HealthStatus.UNKNOWN,
                message="Classifier client not available, skipping probe",
                details={"provider": provider},
            )

        start = time.monotonic()
        reachable = await self._client.health_check()
        latency = (time.monotonic() - start) * 1000

        if reachable:
            return CheckResult(
                name="classifier",
                status=HealthStatus.HEALTHY,
                message=f"Classifier {provider} reachable",
                latency_ms=latency,
                details={"provider": provider},
            )
        return CheckResult(
            name="classifier",
            status=HealthStatus.DEGRADED,
            message=f"Classifier {provider} unreachable; messages use rule-based fallback",
            latency_ms=latency,
            details={"provider": provider},
        )

    async def _check_delivery(self) -> CheckResult:
        """Check direct-alert delivery configuration (not token validity)."""
        slack_config = self._config.delivery.slack
        if slack_config is None:
            return CheckResult(
                name="delivery",
                status=HealthStatus.DEGRADED,
                message="Slack not configured; direct alerts disabled",
                details={"feed_max_entries": self._config.delivery.feed_max_entries},
            )

        if not slack_config.bot_token.startswith("xoxb-"):
            return CheckResult(
                name="delivery",
                status=HealthStatus.UNHEALTHY,
                message="Invalid bot token format",
            )

        return CheckResult(
            name="delivery",
            status=HealthStatus.HEALTHY,
            message="Slack bot token configured",
            details={
                "bot_token_present": True,
                "feed_max_entries": self._config.delivery.feed_max_entries,
            },
        )


async def write_health_file(report: HealthReport, path: Path) -> None:
    """Write health report to a file for external monitoring."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report.to_dict(), indent=2))
        log.debug("health_file_written", path=str(path))
    except OSError as e:
        log.error("health_file_write_error", path=str(path), error=str(e))

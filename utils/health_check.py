"""
Health check utilities for the Quiz Question Ingestion Service

This module checks the components the ingestion pipeline depends on: the
database and the circuit breaker guarding the question generator.
"""
import logging
import time
from typing import Dict, Any, List, Optional
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import text
from sqlalchemy.engine import Engine

from utils.error_handlers import CircuitBreaker, CircuitState

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status enumeration"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    """Health information for a system component"""
    name: str
    status: HealthStatus
    message: str
    details: Optional[Dict[str, Any]] = None
    response_time_ms: Optional[int] = None
    last_check: Optional[str] = None


@dataclass
class SystemHealth:
    """Overall system health information"""
    status: HealthStatus
    message: str
    components: List[ComponentHealth]
    timestamp: str
    uptime_seconds: Optional[int] = None


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class HealthChecker:
    """
    Health checker for the pipeline's dependencies
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize health checker with system components

        Args:
            engine: Database engine
            circuit_breaker: Breaker guarding the question generator
        """
        self.engine = engine
        self.circuit_breaker = circuit_breaker
        self.start_time = time.time()

    async def check_system_health(self, include_details: bool = True) -> SystemHealth:
        """
        Check the health of all system components

        Args:
            include_details: Whether to include detailed component information

        Returns:
            SystemHealth object with overall status and component details
        """
        components = []

        if self.engine is not None:
            components.append(self._check_database())

        if self.circuit_breaker is not None:
            components.append(self._check_circuit_breaker())

        overall_status = self._determine_overall_status(components)

        return SystemHealth(
            status=overall_status,
            message=self._get_status_message(overall_status, components),
            components=components if include_details else [],
            timestamp=_now(),
            uptime_seconds=int(time.time() - self.start_time)
        )

    def _check_database(self) -> ComponentHealth:
        """Check the database answers a trivial query"""
        start_time = time.time()

        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))

            return ComponentHealth(
                name="database",
                status=HealthStatus.HEALTHY,
                message="Database is reachable",
                details={"dialect": self.engine.dialect.name},
                response_time_ms=int((time.time() - start_time) * 1000),
                last_check=_now()
            )

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return ComponentHealth(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database check failed: {str(e)}",
                response_time_ms=int((time.time() - start_time) * 1000),
                last_check=_now()
            )

    def _check_circuit_breaker(self) -> ComponentHealth:
        """Report the generator circuit breaker state"""
        metrics = self.circuit_breaker.get_metrics()
        details = {
            "state": metrics.state.value,
            "buffered_calls": metrics.buffered_calls,
            "failed_calls": metrics.failed_calls,
            "failure_rate": metrics.failure_rate,
            "not_permitted_calls": metrics.not_permitted_calls
        }

        if metrics.state == CircuitState.CLOSED:
            status = HealthStatus.HEALTHY
            message = "Question generator circuit is closed"
        elif metrics.state == CircuitState.HALF_OPEN:
            status = HealthStatus.DEGRADED
            message = "Question generator circuit is probing for recovery"
        else:
            # Requests still complete through the fallback
            status = HealthStatus.DEGRADED
            message = "Question generator circuit is open; generation requests fall back"

        return ComponentHealth(
            name=f"circuit_breaker:{metrics.name}",
            status=status,
            message=message,
            details=details,
            last_check=_now()
        )

    def _determine_overall_status(self, components: List[ComponentHealth]) -> HealthStatus:
        """Determine overall system status based on component health"""
        if not components:
            return HealthStatus.UNKNOWN

        unhealthy_count = sum(1 for c in components if c.status == HealthStatus.UNHEALTHY)
        degraded_count = sum(1 for c in components if c.status == HealthStatus.DEGRADED)
        healthy_count = sum(1 for c in components if c.status == HealthStatus.HEALTHY)

        if unhealthy_count > 0:
            return HealthStatus.UNHEALTHY
        elif degraded_count > 0:
            return HealthStatus.DEGRADED
        elif healthy_count > 0:
            return HealthStatus.HEALTHY
        else:
            return HealthStatus.UNKNOWN

    def _get_status_message(self, status: HealthStatus, components: List[ComponentHealth]) -> str:
        """Get a descriptive message for the overall status"""
        total_components = len(components)

        if status == HealthStatus.HEALTHY:
            return f"All {total_components} system components are healthy"
        elif status == HealthStatus.DEGRADED:
            degraded_components = [c.name for c in components if c.status == HealthStatus.DEGRADED]
            return f"System is degraded - issues with: {', '.join(degraded_components)}"
        elif status == HealthStatus.UNHEALTHY:
            unhealthy_components = [c.name for c in components if c.status == HealthStatus.UNHEALTHY]
            return f"System is unhealthy - critical issues with: {', '.join(unhealthy_components)}"
        else:
            return "System status is unknown"

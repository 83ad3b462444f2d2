"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable
import psutil
from .dedup.base import DedupCache
from .event_models import isoformat_utc
from .ingest.base import AdapterState, IngestAdapter
from .logging import get_logger

logger = get_logger()


class HealthChecker:
    """
    Health checker for the notification service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (is at least one transport feeding subscribers?)
    """

    def __init__(
        self,
        service_name: str = "notifier",
        version: str = "0.1.0",
        adapters: Iterable[IngestAdapter] = (),
        dedup: DedupCache | None = None,
        check_dedup: bool = False,
    ):
        self.service_name = service_name
        self.version = version
        self.adapters = list(adapters)
        self.dedup = dedup
        self.check_dedup = check_dedup

    def _now(self) -> str:
        return isoformat_utc(datetime.now(timezone.utc))

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._now(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Ingest transports (ready when any enabled transport is subscribed)
        - Dedup backend connectivity (if it is external)
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {}
        overall_status = "ready"

        ingest_checks = self._check_ingest()
        checks.update(ingest_checks)
        enabled = [c for c in ingest_checks.values() if c["status"] != "skipped"]
        if enabled and not any(c["status"] == "ok" for c in enabled):
            overall_status = "not_ready"

        dedup_check = await self._check_dedup()
        checks["dedup"] = dedup_check
        if dedup_check["status"] == "error":
            overall_status = "not_ready"

        disk_check = self._check_disk_space()
        checks["disk_space"] = disk_check
        if disk_check["status"] == "error":
            overall_status = "not_ready"

        memory_check = self._check_memory()
        checks["memory"] = memory_check
        if memory_check["status"] == "error":
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._now(),
            "checks": checks,
        }

    def _check_ingest(self) -> Dict[str, Dict[str, Any]]:
        results = {}
        for adapter in self.adapters:
            if adapter.state == AdapterState.DISABLED:
                status = "skipped"
            elif adapter.state == AdapterState.SUBSCRIBED:
                status = "ok"
            else:
                status = "error"
            results[f"ingest_{adapter.transport}"] = {
                "status": status,
                "state": adapter.state.value,
                "attempts": adapter.attempts,
            }
        return results

    async def _check_dedup(self) -> Dict[str, Any]:
        if self.dedup is None or not self.check_dedup:
            return {
                "status": "skipped",
                "message": "In-process dedup cache",
            }

        if await self.dedup.health_check():
            return {"status": "ok"}
        logger.warning("dedup_health_check_failed")
        return {
            "status": "error",
            "error": "Dedup backend unreachable",
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except (psutil.Error, OSError) as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except (psutil.Error, OSError) as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any
import time
import psutil
from .logging import get_logger
from .server import AnalyticsServer

logger = get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the tlytics service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service accept and persist events?)
    """

    def __init__(self, server: AnalyticsServer, service_name: str = "tlytics", version: str = "0.1.0"):
        self.server = server
        self.service_name = service_name
        self.version = version

    def liveness(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _now(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Event store responds to a query
        - Disk space where the database lives
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "store": await self._check_store(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        ready = all(check["status"] != "error" for check in checks.values())

        return {
            "status": "ready" if ready else "not_ready",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _now(),
            "buffered_events": len(self.server.buffer),
            "checks": checks,
        }

    async def _check_store(self) -> Dict[str, Any]:
        start = time.perf_counter()
        if not await self.server.health_check():
            return {"status": "error", "error": "event store unavailable"}
        return {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space on the volume holding the database.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        db_path = self.server.store.db_path
        directory = Path(db_path).resolve().parent if db_path != ":memory:" else Path.cwd()
        try:
            disk = psutil.disk_usage(str(directory))
        except OSError as e:
            logger.warning("disk_health_check_failed", error=str(e), path=str(directory))
            return {"status": "error", "error": str(e)}

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

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory. The buffer is unbounded, so this is the
        signal that sustained flush failures are exhausting the host.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
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

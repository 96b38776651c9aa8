"""
Audit Logger Service

Appends one JSON line per completed analysis. Records carry metadata only:
no medication names and no patient factors. Write failures are logged and
never affect the analysis.
"""

import asyncio
import json
import logging
import os
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict

from medsafe.schemas import AnalysisResult

logger = logging.getLogger(__name__)


def audit_record(result: AnalysisResult, operation: str = "analyze") -> Dict:
    """PII-free audit metadata for a result."""
    return {
        "event": "medication_analyzed",
        "operation": operation,
        "medicationCategory": result.medication_info.category,
        "isCritical": result.medication_info.is_critical,
        "medicationSource": result.medication_info.source,
        "alternativesCount": len(result.alternatives),
        "hasInteractions": result.interactions.has_interactions,
        "severitySummary": dict(result.interactions.severity_summary),
        "confidence": result.confidence,
        "degraded": result.degraded,
        "processingTimeMs": result.processing_time_ms,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class AuditSink:
    """Write-only destination for audit records."""

    async def record(self, result: AnalysisResult, operation: str = "analyze") -> None:
        raise NotImplementedError


class AuditLogger(AuditSink):
    """JSON-lines file sink."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._ensure_log_dir()

    def _ensure_log_dir(self):
        """Ensure log directory exists."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.warning(f"Audit log directory unavailable ({e}); audit records will be dropped")

    async def record(self, result: AnalysisResult, operation: str = "analyze") -> None:
        line = json.dumps(audit_record(result, operation), ensure_ascii=False)
        # File I/O runs off the event loop
        await asyncio.to_thread(self._write, line)

    def _write(self, line: str) -> None:
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            logger.error(f"Audit logging failed: {e}")


class NullAuditSink(AuditSink):
    """Discards every record (auditing disabled)."""

    async def record(self, result: AnalysisResult, operation: str = "analyze") -> None:
        return None


class MemoryAuditSink(AuditSink):
    """Keeps the most recent records in memory."""

    def __init__(self, maxlen: int = 1000):
        self.records: Deque[Dict] = deque(maxlen=maxlen)

    async def record(self, result: AnalysisResult, operation: str = "analyze") -> None:
        self.records.append(audit_record(result, operation))

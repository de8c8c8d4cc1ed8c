"""
Job record definitions.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional

from .job_types import JobKind


class JobStatus(str, Enum):
    """State machine for jobs: pending -> running -> complete | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


def _safe_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_dt(val: Optional[datetime]) -> Optional[datetime]:
    if not val:
        return None
    if isinstance(val, datetime) and val.tzinfo is None:
        return val.replace(tzinfo=timezone.utc)
    return val


@dataclass
class Job:
    """Represents a single job run."""

    job_id: str
    kind: JobKind
    owner: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_step: str = ""
    result_ref: Optional[str] = None
    error: str = ""
    error_type: str = ""
    intersection: Optional[str] = None
    created_at: datetime = field(default_factory=_safe_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stats: Dict = field(default_factory=dict)

    def elapsed(self) -> Optional[timedelta]:
        start = _normalize_dt(self.started_at)
        end = _normalize_dt(self.finished_at)
        if start and end:
            return end - start
        if start and self.status == JobStatus.RUNNING:
            return _safe_now() - start
        return None

    def to_dict(self) -> Dict:
        """Serialize to a JSON-safe dict."""

        def _dt(val: Optional[datetime]) -> Optional[str]:
            return val.isoformat() if isinstance(val, datetime) else None

        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "owner": self.owner,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "result_ref": self.result_ref,
            "error": self.error,
            "error_type": self.error_type,
            "intersection": self.intersection,
            "created_at": _dt(self.created_at),
            "started_at": _dt(self.started_at),
            "finished_at": _dt(self.finished_at),
            "stats": dict(self.stats),
        }

    @staticmethod
    def from_dict(payload: Dict) -> "Job":
        """Deserialize from dict."""

        def _parse_dt(val: Optional[str]) -> Optional[datetime]:
            if not val:
                return None
            try:
                return _normalize_dt(datetime.fromisoformat(val))
            except ValueError:
                return None

        return Job(
            job_id=payload["job_id"],
            kind=JobKind(payload["kind"]),
            owner=payload.get("owner", ""),
            status=JobStatus(payload.get("status", JobStatus.PENDING.value)),
            progress=int(payload.get("progress", 0)),
            current_step=payload.get("current_step", ""),
            result_ref=payload.get("result_ref"),
            error=payload.get("error", ""),
            error_type=payload.get("error_type", ""),
            intersection=payload.get("intersection"),
            created_at=_parse_dt(payload.get("created_at")) or _safe_now(),
            started_at=_parse_dt(payload.get("started_at")),
            finished_at=_parse_dt(payload.get("finished_at")),
            stats=dict(payload.get("stats") or {}),
        )

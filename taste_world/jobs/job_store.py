"""
Persistence for job records on top of the key-value store.
Error text is redacted before it is written.
"""
from __future__ import annotations

from typing import List, Optional

from taste_world.interfaces import KeyValueStore
from taste_world.logging_utils import redact
from taste_world.storage import job_key

from .job_model import Job


class JobStore:
    """put/get job records by id."""

    def __init__(self, store: KeyValueStore, ttl: Optional[float] = None):
        self.store = store
        self.ttl = ttl

    def put(self, job: Job) -> None:
        record = job.to_dict()
        if record.get("error"):
            record["error"] = redact(record["error"])
        self.store.set(
            job_key(job.job_id),
            record,
            metadata={
                "owner": job.owner,
                "kind": job.kind.value,
                "status": job.status.value,
                "progress": job.progress,
            },
            ttl=self.ttl,
        )

    def get(self, job_id: str) -> Optional[Job]:
        payload = self.store.get(job_key(job_id))
        if payload is None:
            return None
        return Job.from_dict(payload)

    def list_for_owner(self, owner: str) -> List[str]:
        """Job ids whose record belongs to ``owner``."""
        prefix = job_key("")
        return [
            key[len(prefix):]
            for key, meta in self.store.list(prefix)
            if meta.get("owner") == owner
        ]

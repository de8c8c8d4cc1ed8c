from .job_types import JobKind
from .job_model import Job, JobStatus
from .job_store import JobStore
from .job_manager import JobManager

__all__ = ["JobKind", "Job", "JobStatus", "JobStore", "JobManager"]

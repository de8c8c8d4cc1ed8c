"""
JobManager runs build and generation pipelines on a worker pool and keeps
their job records current.

Request handlers only call start_*; the pipeline itself runs on a worker
thread. A job's record is the single source of truth for whether it finished:
progress only moves forward, and complete/failed records are never rewritten.
There is no cancellation; an abandoned job still runs to the end.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from taste_world.config_loader import Config
from taste_world.errors import RegenerationCooldown
from taste_world.interfaces import Catalog, Embedder, Extractor, KeyValueStore
from taste_world.logging_utils import bind_run_id, redact
from taste_world.openai_client import OpenAIWorldClient
from taste_world.playlist.candidate_pool import CandidateHarvester
from taste_world.playlist.config import BucketConfig, HarvestConfig, default_harvest_config
from taste_world.playlist.diversity import DiversityBucketer
from taste_world.playlist.materializer import CoverFactory, PlaylistMaterializer
from taste_world.playlist.pipeline import run_build, run_generate
from taste_world.playlist.scoring import ScoringEngine
from taste_world.rate_limiter import FixedWindowRateLimiter
from taste_world.spotify_client import SpotifyCatalog
from taste_world.storage import create_store, manifest_key, world_key
from taste_world.world.builder import TasteWorldBuilder
from taste_world.world.types import OnboardingAnswers, WorldDefinition

from .job_model import Job, JobStatus
from .job_store import JobStore
from .job_types import JobKind

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
# (job_id, progress) -> result_ref
JobBody = Callable[[str, ProgressCallback], Optional[str]]


def _cooldown_key(owner: str, intersection: str) -> str:
    return f"cooldown:{owner}:{intersection}"


class JobManager:
    """Start, track and wait on taste world jobs."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        catalog: Catalog,
        embedder: Embedder,
        extractor: Extractor,
        harvest_config: Optional[HarvestConfig] = None,
        bucket_config: Optional[BucketConfig] = None,
        pca_components: int = 8,
        top_genres_limit: int = 10,
        top_artists_limit: int = 20,
        max_workers: int = 4,
        regenerate_cooldown_seconds: float = 15 * 60,
        cover_factory: Optional[CoverFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.catalog = catalog
        self.embedder = embedder
        self.extractor = extractor
        self.jobs = JobStore(store)
        self.builder = TasteWorldBuilder(
            embedder,
            extractor,
            pca_components=pca_components,
            top_genres_limit=top_genres_limit,
            top_artists_limit=top_artists_limit,
            clock=clock,
        )
        self.harvester = CandidateHarvester(catalog, harvest_config)
        self.scorer = ScoringEngine(catalog, embedder)
        self.bucketer = DiversityBucketer(bucket_config)
        self.materializer = PlaylistMaterializer(catalog, cover_factory, clock=clock)
        self.regenerate_cooldown_seconds = regenerate_cooldown_seconds
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        store: Optional[KeyValueStore] = None,
        catalog: Optional[Catalog] = None,
        ai_client: Optional[OpenAIWorldClient] = None,
    ) -> "JobManager":
        """Wire concrete Spotify/OpenAI/storage collaborators from config.yaml."""
        if store is None:
            store = create_store(config.storage_backend, config.storage_path)
        if catalog is None:
            catalog = SpotifyCatalog(
                config.spotify_access_token,
                base_url=config.spotify_api_base,
                rate_limiter=FixedWindowRateLimiter(
                    max_requests=config.spotify_requests_per_window,
                    window_seconds=config.spotify_window_seconds,
                ),
                max_retries=config.spotify_max_retries,
            )
        if ai_client is None:
            ai_client = OpenAIWorldClient(
                config.openai_api_key,
                model=config.openai_model,
                embedding_model=config.openai_embedding_model,
                max_batch_size=config.openai_embedding_batch_size,
            )
        return cls(
            store=store,
            catalog=catalog,
            embedder=ai_client,
            extractor=ai_client,
            harvest_config=default_harvest_config(config.harvest_overrides),
            pca_components=config.pca_components,
            top_genres_limit=config.top_genres_limit,
            top_artists_limit=config.top_artists_limit,
            max_workers=config.job_max_workers,
            regenerate_cooldown_seconds=config.regenerate_cooldown_minutes * 60,
        )

    # Public API ---------------------------------------------------------
    def start_build(
        self,
        owner: str,
        seed_ids: Sequence[str],
        answers: OnboardingAnswers,
    ) -> str:
        """Queue a world build and return its job id."""
        seed_ids = list(seed_ids)

        def body(job_id: str, progress: ProgressCallback) -> str:
            run_build(
                catalog=self.catalog,
                builder=self.builder,
                store=self.store,
                owner=owner,
                seed_ids=seed_ids,
                answers=answers,
                progress=progress,
            )
            return world_key(owner)

        return self._submit(JobKind.BUILD, owner, body)

    def start_generate(
        self,
        world: WorldDefinition,
        intersection_name: Optional[str] = None,
    ) -> str:
        """
        Queue playlist generation for every intersection of ``world``, or a
        regeneration of a single one.

        Raises:
            KeyError: intersection_name is not part of the world
            RegenerationCooldown: that intersection was regenerated too recently
        """
        kind = JobKind.GENERATE
        if intersection_name is not None:
            if world.get_intersection(intersection_name) is None:
                raise KeyError(f"World {world.id} has no intersection named {intersection_name!r}")
            self._claim_regeneration(world.owner, intersection_name)
            kind = JobKind.REGENERATE

        def body(job_id: str, progress: ProgressCallback) -> str:
            result = run_generate(
                harvester=self.harvester,
                scorer=self.scorer,
                bucketer=self.bucketer,
                materializer=self.materializer,
                store=self.store,
                world=world,
                job_id=job_id,
                kind=kind.value,
                only=intersection_name,
                progress=progress,
            )
            self._record_stats(job_id, result.stats)
            return manifest_key(world.owner, job_id)

        return self._submit(kind, world.owner, body, intersection=intersection_name)

    def poll_status(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Block until the job's worker finishes (or timeout), then return its record."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.poll_status(job_id)

    def shutdown(self) -> None:
        """Drain the worker pool, then close the catalog, AI client and store."""
        self._executor.shutdown(wait=True)
        closed = set()
        for resource in (self.catalog, self.embedder, self.extractor, self.store):
            close = getattr(resource, "close", None)
            if close is None or id(resource) in closed:
                continue
            closed.add(id(resource))
            close()

    # Internal helpers ---------------------------------------------------
    def _new_job_id(self, kind: JobKind, owner: str) -> str:
        return f"{kind.value}-{owner}-{uuid.uuid4().hex}"

    def _submit(
        self,
        kind: JobKind,
        owner: str,
        body: JobBody,
        intersection: Optional[str] = None,
    ) -> str:
        job = Job(
            job_id=self._new_job_id(kind, owner),
            kind=kind,
            owner=owner,
            intersection=intersection,
        )
        with self._lock:
            self.jobs.put(job)
        return self._dispatch(job, body)

    def _dispatch(self, job: Job, body: JobBody) -> str:
        future = self._executor.submit(self._run, job.job_id, body)
        with self._lock:
            self._futures[job.job_id] = future
        logger.info(f"Queued {job.kind.label()} job {job.job_id}")
        return job.job_id

    def _run(self, job_id: str, body: JobBody) -> None:
        with bind_run_id(job_id):
            self._transition(job_id, status=JobStatus.RUNNING, current_step="Starting...")
            try:
                result_ref = body(job_id, lambda pct, step: self._checkpoint(job_id, pct, step))
            except Exception as e:
                logger.exception(f"Job {job_id} failed")
                self._transition(
                    job_id,
                    status=JobStatus.FAILED,
                    error=redact(f"{type(e).__name__}: {e}"),
                    error_type=type(e).__name__,
                )
                return
            self._transition(
                job_id,
                status=JobStatus.COMPLETE,
                progress=100,
                current_step="Complete!",
                result_ref=result_ref,
            )
            logger.info(f"Job {job_id} complete")

    def _checkpoint(self, job_id: str, progress: int, step: str) -> None:
        self._transition(job_id, progress=progress, current_step=step)

    def _record_stats(self, job_id: str, stats: Dict) -> None:
        self._transition(job_id, stats=stats)

    def _transition(self, job_id: str, **changes) -> None:
        """Apply changes to a job record, never lowering progress or touching terminal records."""
        with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                logger.warning(f"Update for unknown job {job_id}")
                return
            if job.status.is_terminal:
                logger.debug(f"Ignoring update to finished job {job_id}")
                return

            now = datetime.now(timezone.utc)
            status = changes.pop("status", None)
            if status is not None:
                job.status = status
                if status == JobStatus.RUNNING and job.started_at is None:
                    job.started_at = now
                if status.is_terminal:
                    job.finished_at = now

            progress = changes.pop("progress", None)
            if progress is not None:
                job.progress = max(job.progress, min(100, int(progress)))

            for name, value in changes.items():
                setattr(job, name, value)
            self.jobs.put(job)

    def _claim_regeneration(self, owner: str, intersection: str) -> None:
        key = _cooldown_key(owner, intersection)
        with self._lock:
            now = self._clock()
            claimed = self.store.get(key)
            if claimed is not None:
                remaining = self.regenerate_cooldown_seconds - (now - float(claimed["at"]))
                if remaining > 0:
                    raise RegenerationCooldown(intersection, remaining)
            self.store.set(key, {"at": now}, ttl=self.regenerate_cooldown_seconds)

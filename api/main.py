import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Allow importing the taste_world package from a source checkout
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from taste_world.config_loader import Config  # type: ignore
from taste_world.errors import RegenerationCooldown, WorldNotFound  # type: ignore
from taste_world.jobs import JobManager  # type: ignore
from taste_world.logging_utils import configure_logging  # type: ignore
from taste_world.storage import load_world  # type: ignore
from taste_world.world.types import OnboardingAnswers  # type: ignore

CONFIG_PATH = Path(os.getenv("TASTE_WORLD_CONFIG", ROOT_DIR / "config.yaml"))

logger = logging.getLogger(__name__)

app = FastAPI(title="Taste World API")

manager: Optional[JobManager] = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class BuildWorldRequest(BaseModel):
    owner: str = Field(..., min_length=1, description="Catalog user id that will own the world")
    seed_track_ids: List[str] = Field(default_factory=list)
    onboarding_answers: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)


class GenerateRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    intersection: Optional[str] = Field(
        None, description="Regenerate only this intersection (subject to cooldown)"
    )


class JobAccepted(BaseModel):
    job_id: str
    poll_url: str


def _get_manager() -> JobManager:
    if manager is None:
        raise HTTPException(status_code=503, detail="Job manager not initialized")
    return manager


def _init_services() -> None:
    """Initialize the shared job manager once for the API process."""
    global manager
    if manager is not None:
        return

    config = Config(str(CONFIG_PATH))
    configure_logging(level=config.log_level, log_file=config.log_file)
    manager = JobManager.from_config(config)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _init_services()
    yield
    if manager is not None:
        manager.shutdown()


app.router.lifespan_context = lifespan


def _accepted(job_id: str) -> JobAccepted:
    return JobAccepted(job_id=job_id, poll_url=f"/api/world-status?job_id={job_id}")


@app.post("/api/build-world", status_code=202, response_model=JobAccepted)
def build_world(request: BuildWorldRequest) -> JobAccepted:
    """Queue a world build. Progress is reported through /api/world-status."""
    mgr = _get_manager()
    answers = OnboardingAnswers.from_dict(request.onboarding_answers)
    job_id = mgr.start_build(request.owner, request.seed_track_ids, answers)
    return _accepted(job_id)


@app.post("/api/generate-playlists", status_code=202, response_model=JobAccepted)
def generate_playlists(request: GenerateRequest) -> JobAccepted:
    """
    Queue playlist generation for every intersection of the owner's world,
    or a regeneration of one intersection.
    """
    mgr = _get_manager()
    try:
        world = load_world(mgr.store, request.owner)
    except WorldNotFound:
        raise HTTPException(status_code=404, detail=f"No world found for {request.owner}")

    try:
        job_id = mgr.start_generate(world, request.intersection)
    except KeyError:
        raise HTTPException(
            status_code=404,
            detail=f"World has no intersection named {request.intersection}",
        )
    except RegenerationCooldown as e:
        raise HTTPException(status_code=429, detail=str(e))
    return _accepted(job_id)


@app.get("/api/world-status")
def world_status(job_id: str = Query(..., min_length=1)) -> Dict[str, object]:
    """Return the job record: status, progress, current step, error and result."""
    job = _get_manager().poll_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@app.get("/api/world")
def get_world(owner: str = Query(..., min_length=1)) -> Dict[str, object]:
    mgr = _get_manager()
    try:
        world = load_world(mgr.store, owner)
    except WorldNotFound:
        raise HTTPException(status_code=404, detail=f"No world found for {owner}")
    return world.to_dict()

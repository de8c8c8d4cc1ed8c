from .config import BucketConfig, HarvestConfig, SCORE_WEIGHTS, default_harvest_config
from .candidate_pool import CandidateHarvester, HarvestCall, plan_harvest_calls
from .scoring import ScoringEngine, ScoringResult
from .diversity import DiversityBucketer, Playlist
from .materializer import GenerationManifest, ManifestEntry, PlaylistMaterializer
from .pipeline import GenerationResult, run_build, run_generate

__all__ = [
    "BucketConfig",
    "HarvestConfig",
    "SCORE_WEIGHTS",
    "default_harvest_config",
    "CandidateHarvester",
    "HarvestCall",
    "plan_harvest_calls",
    "ScoringEngine",
    "ScoringResult",
    "DiversityBucketer",
    "Playlist",
    "GenerationManifest",
    "ManifestEntry",
    "PlaylistMaterializer",
    "GenerationResult",
    "run_build",
    "run_generate",
]

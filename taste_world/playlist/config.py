from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Final score weights (sum to 1.0)
SEMANTIC_WEIGHT = 0.4
SPOTIFY_WEIGHT = 0.3
NOVELTY_WEIGHT = 0.2
DIVERSITY_WEIGHT = 0.1
SCORE_WEIGHTS = (SEMANTIC_WEIGHT, SPOTIFY_WEIGHT, NOVELTY_WEIGHT, DIVERSITY_WEIGHT)

NOVELTY_BONUS = 0.15
# (average genre frequency below, bonus), checked in order
DIVERSITY_BONUS_STEPS = ((10, 0.10), (30, 0.05))
MISSING_GENRE_FREQUENCY = 1000

# Coarse filter slack around the seed feature ranges
VALENCE_PADDING = 0.2
ENERGY_PADDING = 0.2
TEMPO_PADDING = 20.0
ACOUSTICNESS_LOWER_PADDING = 0.2


@dataclass(frozen=True)
class HarvestConfig:
    seed_limit: int
    slice_size: int
    per_call_limit: int
    darker_valence_offset: float
    darker_energy_offset: float
    organic_acousticness_offset: float
    danceability_min_seeds: int
    max_workers: int


@dataclass(frozen=True)
class BucketConfig:
    window_size: int = 80
    playlist_size: int = 50
    genre_cap: int = 8
    bias_weight: float = 0.1
    tempo_scale: float = 100.0


def default_harvest_config(overrides: Optional[dict] = None) -> HarvestConfig:
    """
    Return harvest defaults, optionally overridden from the config.yaml
    ``harvest`` section.

    Defaults: first 30 seeds, 5 per call, 100 tracks per call.
    """
    if overrides is None:
        overrides = {}

    cfg = HarvestConfig(
        seed_limit=int(overrides.get("seed_limit", 30)),
        slice_size=int(overrides.get("slice_size", 5)),
        per_call_limit=int(overrides.get("per_call_limit", 100)),
        darker_valence_offset=float(overrides.get("darker_valence_offset", 0.2)),
        darker_energy_offset=float(overrides.get("darker_energy_offset", 0.1)),
        organic_acousticness_offset=float(overrides.get("organic_acousticness_offset", 0.2)),
        danceability_min_seeds=int(overrides.get("danceability_min_seeds", 30)),
        max_workers=int(overrides.get("max_workers", 4)),
    )
    if cfg.slice_size < 1 or cfg.seed_limit < 1:
        raise ValueError("harvest.seed_limit and harvest.slice_size must be positive")
    if not 1 <= cfg.per_call_limit <= 100:
        raise ValueError("harvest.per_call_limit must be between 1 and 100")
    return cfg

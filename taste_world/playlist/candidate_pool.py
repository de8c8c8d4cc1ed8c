"""
Candidate harvesting: a diversified set of "similar tracks" catalog queries.

Seeds are cut into disjoint slices; each slice is sent with a different target
feature profile derived from the world centroid. Results are merged in call
order, which encodes the bias intent, so the first occurrence of a track wins.
"""
from __future__ import annotations

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from taste_world.errors import NoSeedTracks
from taste_world.interfaces import Catalog
from taste_world.logging_utils import format_count
from taste_world.world.types import CandidateTrack, Track, WorldDefinition

from .config import HarvestConfig, default_harvest_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarvestCall:
    label: str
    seed_ids: List[str]
    target_features: Dict[str, float] = field(default_factory=dict)


def plan_harvest_calls(world: WorldDefinition, cfg: HarvestConfig) -> List[HarvestCall]:
    """
    Pair seed slices with target profiles, in this order:
    unbiased, centroid mood/texture, centroid tempo/instrumentalness,
    darker, organic, and danceability (only for large seed sets).
    """
    seeds = list(world.seed_track_ids[: cfg.seed_limit])
    slices = [seeds[i:i + cfg.slice_size] for i in range(0, len(seeds), cfg.slice_size)]
    slices = [s for s in slices if s]
    if not slices:
        return []

    base = world.baseline_features()
    profiles = [
        ("unbiased", {}),
        ("centroid", {
            "valence": base["valence"],
            "energy": base["energy"],
            "acousticness": base["acousticness"],
        }),
        ("tempo", {
            "tempo": base["tempo"],
            "instrumentalness": base["instrumentalness"],
        }),
        ("darker", {
            "valence": max(0.0, base["valence"] - cfg.darker_valence_offset),
            "energy": max(0.0, base["energy"] - cfg.darker_energy_offset),
        }),
        ("organic", {
            "acousticness": min(1.0, base["acousticness"] + cfg.organic_acousticness_offset),
        }),
    ]
    if len(world.seed_track_ids) >= cfg.danceability_min_seeds:
        profiles.append(("danceability", {"danceability": base["danceability"]}))

    return [
        HarvestCall(label=label, seed_ids=seed_slice, target_features=targets)
        for seed_slice, (label, targets) in zip(slices, profiles)
    ]


def dedupe_tracks(batches: Iterable[Sequence[Track]]) -> List[Track]:
    """Flatten batches keeping the first occurrence of each track id."""
    seen = set()
    merged: List[Track] = []
    for batch in batches:
        for track in batch:
            if track.id in seen:
                continue
            seen.add(track.id)
            merged.append(track)
    return merged


def remove_seed_tracks(tracks: Sequence[Track], seed_ids: Iterable[str]) -> List[Track]:
    blocked = set(seed_ids)
    return [t for t in tracks if t.id not in blocked]


class CandidateHarvester:
    """Runs the harvest plan against a Catalog."""

    def __init__(self, catalog: Catalog, config: Optional[HarvestConfig] = None):
        self.catalog = catalog
        self.config = config or default_harvest_config()

    def collect(self, world: WorldDefinition) -> List[Track]:
        """
        Issue every planned call (concurrently) and merge results in call order.

        A failed call is logged and skipped; only if every call fails is the
        first error raised.
        """
        if not world.seed_track_ids:
            raise NoSeedTracks(f"World {world.id} has no seed tracks")

        calls = plan_harvest_calls(world, self.config)
        results: List[Optional[List[Track]]] = [None] * len(calls)
        errors: List[Exception] = []

        workers = max(1, min(self.config.max_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="harvest") as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, self._search, call)
                for call in calls
            ]
            for i, (call, future) in enumerate(zip(calls, futures)):
                try:
                    results[i] = future.result()
                except Exception as e:
                    logger.warning(f"Harvest call '{call.label}' failed: {type(e).__name__}: {e}")
                    errors.append(e)

        if calls and len(errors) == len(calls):
            raise errors[0]

        merged = dedupe_tracks(r for r in results if r is not None)
        logger.info(
            f"Harvested {format_count(len(merged), 'unique candidate')} "
            f"from {format_count(len(calls) - len(errors), 'call')}"
        )
        return merged

    def harvest(self, world: WorldDefinition) -> List[CandidateTrack]:
        """Collect, then drop anything the user already has as a seed."""
        tracks = remove_seed_tracks(self.collect(world), world.seed_track_ids)
        return self.to_candidates(tracks)

    @staticmethod
    def to_candidates(tracks: Sequence[Track]) -> List[CandidateTrack]:
        return [CandidateTrack(track=t) for t in tracks]

    def _search(self, call: HarvestCall) -> List[Track]:
        tracks = self.catalog.search_similar(
            call.seed_ids,
            call.target_features,
            self.config.per_call_limit,
        )
        logger.debug(f"Harvest call '{call.label}' returned {len(tracks)} tracks")
        return list(tracks)

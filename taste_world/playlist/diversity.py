"""
Per-intersection biasing and diversity-capped selection.

For each intersection, candidates get a derived biased score (base score plus
a proximity reward toward the intersection's target point), are stably sorted,
and a greedy pass over the top of that list picks tracks while enforcing
distinct artists, distinct albums and a per-genre cap.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from taste_world.world.types import CandidateTrack, Intersection, WorldDefinition

from .config import BucketConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Playlist:
    """
    One intersection's selection.

    Attributes:
        name: Intersection name
        description: Intersection description
        tracks: Selected candidates, in selection order
        biased_scores: Biased score of each selected track (same order)
        stats: window size, skip counts by reason
    """
    name: str
    description: str
    tracks: List[CandidateTrack] = field(default_factory=list)
    biased_scores: List[float] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def track_ids(self) -> List[str]:
        return [c.id for c in self.tracks]

    @property
    def uris(self) -> List[str]:
        return [c.track.uri for c in self.tracks]


def resolve_targets(world: WorldDefinition, intersection: Intersection) -> Dict[str, float]:
    """Absolute target per biased feature: world baseline + intersection delta."""
    baseline = world.baseline_features()
    targets: Dict[str, float] = {}
    for feature, delta in intersection.bias.items():
        if feature not in baseline:
            logger.warning(f"Ignoring unknown bias feature '{feature}' on '{intersection.name}'")
            continue
        targets[feature] = baseline[feature] + delta
    return targets


def biased_score(
    candidate: CandidateTrack,
    targets: Dict[str, float],
    cfg: BucketConfig,
) -> float:
    if candidate.score is None or candidate.audio_features is None:
        raise ValueError(f"Candidate {candidate.id} has not been scored")

    total = candidate.score
    for feature, target in targets.items():
        value = float(getattr(candidate.audio_features, feature))
        if feature == "tempo":
            total += max(0.0, 1.0 - abs(value - target) / cfg.tempo_scale) * cfg.bias_weight
        else:
            total += (1.0 - abs(value - target)) * cfg.bias_weight
    return total


def select_diverse(
    *,
    ranked: Sequence[Tuple[CandidateTrack, float]],
    cfg: BucketConfig,
) -> Tuple[List[Tuple[CandidateTrack, float]], Dict[str, int]]:
    """
    Greedy first-come selection over an already-sorted window.

    Skips a candidate sharing any artist or its album with an earlier pick,
    or whose primary genre already has genre_cap picks. Tracks with no album
    id are never treated as sharing an album. No backtracking.
    """
    used_artists = set()
    used_albums = set()
    genre_counts: Counter = Counter()
    selected: List[Tuple[CandidateTrack, float]] = []
    skipped = Counter()

    for candidate, score in ranked:
        if len(selected) >= cfg.playlist_size:
            break
        if any(a in used_artists for a in candidate.artist_ids):
            skipped["artist"] += 1
            continue
        if candidate.album_id and candidate.album_id in used_albums:
            skipped["album"] += 1
            continue
        genre = candidate.primary_genre
        if genre_counts[genre] >= cfg.genre_cap:
            skipped["genre"] += 1
            continue

        selected.append((candidate, score))
        used_artists.update(candidate.artist_ids)
        if candidate.album_id:
            used_albums.add(candidate.album_id)
        genre_counts[genre] += 1

    return selected, dict(skipped)


class DiversityBucketer:
    """Turns one scored candidate pool into one playlist per intersection."""

    def __init__(self, config: Optional[BucketConfig] = None):
        self.config = config or BucketConfig()

    def bucket(
        self,
        candidates: Sequence[CandidateTrack],
        world: WorldDefinition,
        *,
        only: Optional[str] = None,
    ) -> List[Playlist]:
        """
        Build playlists for every intersection (or just ``only``).

        An empty candidate pool yields empty playlists, never an error.
        """
        intersections = world.intersections
        if only is not None:
            intersections = [i for i in intersections if i.name == only]
            if not intersections:
                raise KeyError(f"World {world.id} has no intersection named {only!r}")

        return [self.bucket_intersection(candidates, world, i) for i in intersections]

    def bucket_intersection(
        self,
        candidates: Sequence[CandidateTrack],
        world: WorldDefinition,
        intersection: Intersection,
    ) -> Playlist:
        cfg = self.config
        targets = resolve_targets(world, intersection)

        scored = [(c, biased_score(c, targets, cfg)) for c in candidates]
        # sorted() is stable: ties keep pool order
        ranked = sorted(scored, key=lambda pair: -pair[1])
        window = ranked[: cfg.window_size]

        selected, skipped = select_diverse(ranked=window, cfg=cfg)
        logger.info(
            f"Intersection '{intersection.name}': selected {len(selected)} of "
            f"{len(window)} windowed candidates (skipped {skipped or 'none'})"
        )
        return Playlist(
            name=intersection.name,
            description=intersection.description,
            tracks=[c for c, _ in selected],
            biased_scores=[s for _, s in selected],
            stats={"window": len(window), **skipped},
        )

"""
Candidate scoring for intersection playlists.

Candidates go through: feature lookup -> coarse range filter -> genre
resolution -> semantic + feature-distance scoring -> novelty/diversity
bonuses -> weighted final score. Candidates that cannot be enriched are
dropped rather than failing the batch.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from taste_world.errors import UpstreamUnavailable
from taste_world.interfaces import Catalog, Embedder
from taste_world.logging_utils import format_count
from taste_world.similarity.vector_math import (
    audio_features_to_vector,
    cosine_similarity,
    euclidean_distance,
)
from taste_world.world.builder import embed_texts
from taste_world.world.style import describe_track
from taste_world.world.types import CandidateTrack, WorldDefinition

from .config import (
    ACOUSTICNESS_LOWER_PADDING,
    DIVERSITY_BONUS_STEPS,
    DIVERSITY_WEIGHT,
    ENERGY_PADDING,
    MISSING_GENRE_FREQUENCY,
    NOVELTY_BONUS,
    NOVELTY_WEIGHT,
    SEMANTIC_WEIGHT,
    SPOTIFY_WEIGHT,
    TEMPO_PADDING,
    VALENCE_PADDING,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class ScoringResult:
    """
    Result of scoring a candidate batch.

    Attributes:
        scored: Candidates with every score field populated, in input order
        stats: Counts at each stage (with_features, after_coarse_filter, ...)
    """
    scored: List[CandidateTrack]
    stats: Dict[str, Any] = field(default_factory=dict)


def passes_coarse_filter(candidate: CandidateTrack, world: WorldDefinition) -> bool:
    """Range check against the seed feature ranges, widened by fixed padding."""
    features = candidate.audio_features
    if features is None:
        return False
    ranges = world.feature_ranges

    checks = (
        ("valence", VALENCE_PADDING, VALENCE_PADDING),
        ("energy", ENERGY_PADDING, ENERGY_PADDING),
        ("tempo", TEMPO_PADDING, TEMPO_PADDING),
    )
    for name, below, above in checks:
        if name not in ranges:
            continue
        lo, hi = ranges[name]
        value = getattr(features, name)
        if value < lo - below or value > hi + above:
            return False

    if "acousticness" in ranges:
        lo, _ = ranges["acousticness"]
        if features.acousticness < lo - ACOUSTICNESS_LOWER_PADDING:
            return False
    return True


def diversity_bonus(average_frequency: float) -> float:
    for bound, bonus in DIVERSITY_BONUS_STEPS:
        if average_frequency < bound:
            return bonus
    return 0.0


def final_score(
    *,
    semantic_score: float,
    spotify_score: float,
    novelty_bonus: float,
    diversity_bonus: float,
) -> float:
    return (
        SEMANTIC_WEIGHT * semantic_score
        + SPOTIFY_WEIGHT * spotify_score
        + NOVELTY_WEIGHT * novelty_bonus
        + DIVERSITY_WEIGHT * diversity_bonus
    )


class ScoringEngine:
    """Enriches and scores harvested candidates for one world."""

    def __init__(self, catalog: Catalog, embedder: Embedder):
        self.catalog = catalog
        self.embedder = embedder

    def score(
        self,
        candidates: Sequence[CandidateTrack],
        world: WorldDefinition,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> List[CandidateTrack]:
        return self.run(candidates, world, progress=progress).scored

    def run(
        self,
        candidates: Sequence[CandidateTrack],
        world: WorldDefinition,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> ScoringResult:
        report = progress or (lambda pct, step: None)
        stats: Dict[str, Any] = {"input": len(candidates)}

        report(30, "Fetching audio features...")
        pool = self.attach_features(candidates)
        stats["with_features"] = len(pool)

        report(40, "Filtering by taste ranges...")
        pool = [c for c in pool if passes_coarse_filter(c, world)]
        stats["after_coarse_filter"] = len(pool)
        logger.info(f"Coarse filter kept {format_count(len(pool), 'candidate')} of {stats['with_features']}")

        report(50, "Resolving genres...")
        pool = self.attach_genres(pool)
        stats["with_genres"] = len(pool)

        report(60, "Scoring semantic similarity...")
        self.attach_similarity_scores(pool, world)

        report(70, "Applying novelty and diversity bonuses...")
        self.attach_bonuses(pool, world)

        for candidate in pool:
            candidate.finalize_score(final_score(
                semantic_score=candidate.semantic_score,
                spotify_score=candidate.spotify_score,
                novelty_bonus=candidate.novelty_bonus,
                diversity_bonus=candidate.diversity_bonus,
            ))
        stats["scored"] = len(pool)
        return ScoringResult(scored=pool, stats=stats)

    # Steps -------------------------------------------------------------
    def attach_features(self, candidates: Sequence[CandidateTrack]) -> List[CandidateTrack]:
        """Fetch audio features; candidates without any are dropped."""
        if not candidates:
            return []
        ids = [c.id for c in candidates]
        features = self.catalog.batch_features(ids)
        if len(features) != len(ids):
            raise UpstreamUnavailable(
                f"Catalog returned {len(features)} feature rows for {len(ids)} tracks"
            )

        kept: List[CandidateTrack] = []
        for candidate, feats in zip(candidates, features):
            if feats is None:
                continue
            candidate.audio_features = feats
            kept.append(candidate)
        dropped = len(candidates) - len(kept)
        if dropped:
            logger.info(f"Dropped {format_count(dropped, 'candidate')} without audio features")
        return kept

    def attach_genres(self, candidates: Sequence[CandidateTrack]) -> List[CandidateTrack]:
        """
        Union each candidate's artists' genres (deduplicated, in artist order).

        Candidates none of whose artists resolve are dropped. A resolved
        artist with no genres still counts as resolved.
        """
        if not candidates:
            return []
        artist_ids: List[str] = []
        seen = set()
        for candidate in candidates:
            for artist_id in candidate.artist_ids:
                if artist_id and artist_id not in seen:
                    seen.add(artist_id)
                    artist_ids.append(artist_id)

        genres_by_artist = {a.id: list(a.genres) for a in self.catalog.batch_artists(artist_ids)}

        kept: List[CandidateTrack] = []
        for candidate in candidates:
            resolved = [a for a in candidate.artist_ids if a in genres_by_artist]
            if not resolved:
                continue
            genres: List[str] = []
            for artist_id in resolved:
                for genre in genres_by_artist[artist_id]:
                    if genre not in genres:
                        genres.append(genre)
            candidate.genres = genres
            kept.append(candidate)
        dropped = len(candidates) - len(kept)
        if dropped:
            logger.info(f"Dropped {format_count(dropped, 'candidate')} with unresolved artists")
        return kept

    def attach_similarity_scores(self, candidates: Sequence[CandidateTrack], world: WorldDefinition) -> None:
        """semantic_score vs the world's semantic centroid, spotify_score vs its taste centroid."""
        if not candidates:
            return
        descriptions = [
            describe_track(
                artist=c.track.primary_artist_name,
                title=c.track.name,
                album=c.track.album.name,
                genres=c.genres,
                year=c.track.release_year,
                features=c.audio_features,
            )
            for c in candidates
        ]
        embeddings = embed_texts(self.embedder, descriptions)

        for candidate, embedding in zip(candidates, embeddings):
            candidate.semantic_score = cosine_similarity(embedding, world.semantic_centroid)
            vector = audio_features_to_vector(candidate.audio_features)
            # Similarity, not distance: may go negative and is not clamped
            candidate.spotify_score = 1.0 - euclidean_distance(vector, world.taste_centroid)

    def attach_bonuses(self, candidates: Sequence[CandidateTrack], world: WorldDefinition) -> None:
        """Novelty against the world's top artists, diversity by genre rarity in this batch."""
        top_artists = set(world.top_artists)
        genre_counts = Counter(genre for c in candidates for genre in c.genres)

        for candidate in candidates:
            known = any(a in top_artists for a in candidate.artist_ids)
            candidate.novelty_bonus = 0.0 if known else NOVELTY_BONUS

            if candidate.genres:
                average = sum(genre_counts[g] for g in candidate.genres) / len(candidate.genres)
            else:
                average = MISSING_GENRE_FREQUENCY
            candidate.diversity_bonus = diversity_bonus(average)

"""
Taste model builder: seed tracks + onboarding answers -> WorldDefinition.

The numeric half (centroid, PCA, feature ranges) is computed locally from the
seed feature matrix. The semantic half needs one embedding call for the seed
descriptions and one structured extraction call for naming, emotional
geometry and intersections.
"""
from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from taste_world.errors import InsufficientSeedData, UpstreamUnavailable, WorldExtractionFailed
from taste_world.interfaces import Embedder, Extractor
from taste_world.logging_utils import format_count, truncate_list
from taste_world.similarity.vector_math import (
    audio_features_to_vector,
    centroid,
    principal_component_analysis,
    vector_to_feature_map,
)
from taste_world.world.bias_rules import parse_intersection_bias
from taste_world.world.style import describe_track
from taste_world.world.types import (
    RANGE_FEATURES,
    AudioFeatures,
    EmotionalGeometry,
    EnrichedTrack,
    Intersection,
    OnboardingAnswers,
    PcaComponents,
    WorldDefinition,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

_GEOMETRY_AXES = ("darkness_warmth", "intimate_expansive", "acoustic_electronic")


def embed_texts(embedder: Embedder, texts: Sequence[str]) -> List[List[float]]:
    """Embed texts in chunks no larger than the embedder's batch limit."""
    batch_size = max(1, int(getattr(embedder, "max_batch_size", 2048)))
    vectors: List[List[float]] = []
    for start in range(0, len(texts), batch_size):
        chunk = list(texts[start:start + batch_size])
        result = embedder.embed_batch(chunk)
        if len(result) != len(chunk):
            raise UpstreamUnavailable(
                f"Embedding provider returned {len(result)} vectors for {len(chunk)} inputs"
            )
        vectors.extend(result)
    return vectors


def _humanize(question_id: str) -> str:
    text = question_id.replace("_", " ").strip()
    return text[:1].upper() + text[1:]


def format_answers(answers: OnboardingAnswers) -> str:
    """Render structured onboarding answers as the transcript sent to the extractor."""
    lines: List[str] = []
    question_ids = list(answers.responses)
    question_ids += [q for q in answers.custom if q not in answers.responses]

    for question_id in question_ids:
        selected = answers.responses.get(question_id, [])
        custom = answers.custom.get(question_id, "")
        if not selected and not custom:
            continue
        lines.append(_humanize(question_id))
        if selected:
            lines.append(f"→ {', '.join(selected)}")
        if custom:
            lines.append(f"→ In their words: {custom}")
        lines.append("")

    if answers.custom_keywords:
        lines.append(f"Custom keywords: {', '.join(answers.custom_keywords)}")

    return "\n".join(lines).strip()


def compute_feature_ranges(features: Sequence[AudioFeatures]) -> Dict[str, Tuple[float, float]]:
    """Per-feature [min, max] over the seeds for the range-tracked features."""
    ranges: Dict[str, Tuple[float, float]] = {}
    if not features:
        return ranges
    for name in RANGE_FEATURES:
        values = [float(getattr(f, name)) for f in features]
        ranges[name] = (min(values), max(values))
    return ranges


def top_genres(seeds: Sequence[EnrichedTrack], limit: int = 10) -> List[str]:
    counts = Counter(genre for seed in seeds for genre in seed.genres)
    return [genre for genre, _ in counts.most_common(limit)]


def top_artists(seeds: Sequence[EnrichedTrack], limit: int = 20) -> Tuple[List[str], List[str]]:
    """Artist ids (and matching names) ranked by how many seeds they appear on."""
    counts: Counter = Counter()
    names: Dict[str, str] = {}
    for seed in seeds:
        for artist in seed.track.artists:
            if not artist.id:
                continue
            counts[artist.id] += 1
            names.setdefault(artist.id, artist.name)
    ranked = [artist_id for artist_id, _ in counts.most_common(limit)]
    return ranked, [names[a] for a in ranked]


def era_distribution(seeds: Sequence[EnrichedTrack]) -> Dict[str, int]:
    eras: Dict[str, int] = {}
    for seed in seeds:
        year = seed.release_year
        if year is None:
            continue
        era = f"{(year // 10) * 10}s"
        eras[era] = eras.get(era, 0) + 1
    return eras


def _parse_geometry(raw: Any) -> EmotionalGeometry:
    if not isinstance(raw, Mapping):
        raise WorldExtractionFailed("emotional_geometry missing or not an object")
    values = {}
    for axis in _GEOMETRY_AXES:
        try:
            value = float(raw[axis])
        except (KeyError, TypeError, ValueError) as exc:
            raise WorldExtractionFailed(f"emotional_geometry.{axis} missing or not numeric") from exc
        if not -1.0 <= value <= 1.0:
            logger.warning(f"emotional_geometry.{axis}={value} outside [-1, 1], clamping")
            value = max(-1.0, min(1.0, value))
        values[axis] = value
    return EmotionalGeometry(**values)


def _string_list(raw: Any, field_name: str) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise WorldExtractionFailed(f"{field_name} must be a list")
    return [str(item) for item in raw]


def _parse_intersections(raw: Any) -> List[Intersection]:
    if not isinstance(raw, list) or not raw:
        raise WorldExtractionFailed("intersections missing or empty")

    intersections: List[Intersection] = []
    for item in raw:
        if not isinstance(item, Mapping) or not item.get("name"):
            raise WorldExtractionFailed(f"intersection without a name: {item!r}")
        bias_text = str(item.get("bias_description") or "")
        description = str(item.get("description") or bias_text)
        intersections.append(
            Intersection(
                name=str(item["name"]),
                description=description,
                bias=parse_intersection_bias(bias_text or description),
                bias_description=bias_text,
            )
        )
    return intersections


class TasteWorldBuilder:
    """Builds WorldDefinitions using an embedder and an extractor."""

    def __init__(
        self,
        embedder: Embedder,
        extractor: Extractor,
        *,
        pca_components: int = 8,
        top_genres_limit: int = 10,
        top_artists_limit: int = 20,
        clock: Callable[[], float] = time.time,
    ):
        self.embedder = embedder
        self.extractor = extractor
        self.pca_components = pca_components
        self.top_genres_limit = top_genres_limit
        self.top_artists_limit = top_artists_limit
        self._clock = clock

    def build(
        self,
        seed_tracks: Sequence[EnrichedTrack],
        answers: OnboardingAnswers,
        *,
        owner: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> WorldDefinition:
        """
        Build a world from enriched seed tracks.

        Raises:
            InsufficientSeedData: no seed track has audio features
            WorldExtractionFailed: the extraction output is unusable
        """
        report = progress or (lambda pct, step: None)

        seeds = [s for s in seed_tracks if s.audio_features is not None]
        if not seeds:
            raise InsufficientSeedData("At least one seed track with audio features is required")
        if len(seeds) < len(seed_tracks):
            logger.warning(
                f"Dropped {format_count(len(seed_tracks) - len(seeds), 'seed')} without audio features"
            )

        report(55, "Computing taste vector...")
        features = [s.audio_features for s in seeds]
        matrix = np.vstack([audio_features_to_vector(f) for f in features])
        taste_centroid = centroid(matrix)
        pca = self._pca(matrix)
        feature_ranges = compute_feature_ranges(features)

        genres = top_genres(seeds, self.top_genres_limit)
        artist_ids, artist_names = top_artists(seeds, self.top_artists_limit)
        logger.info(f"Top genres: {truncate_list(genres, 5)}")

        report(65, "Generating semantic embeddings...")
        descriptions = [
            describe_track(
                artist=s.track.primary_artist_name,
                title=s.track.name,
                album=s.track.album.name,
                genres=s.genres,
                year=s.release_year,
                features=s.audio_features,
            )
            for s in seeds
        ]
        embeddings = embed_texts(self.embedder, descriptions)
        semantic_centroid = centroid(embeddings)

        report(80, "Extracting world definition...")
        baseline = vector_to_feature_map(taste_centroid)
        payload = self.extractor.extract_world(
            format_answers(answers),
            {"audio_features": baseline, "top_artists": artist_names[:10]},
            genres,
            list(answers.custom_keywords),
        )
        if not isinstance(payload, Mapping):
            raise WorldExtractionFailed("Extraction result is not a JSON object")

        world_name = payload.get("world_name")
        if not world_name or not isinstance(world_name, str):
            raise WorldExtractionFailed("world_name missing from extraction result")
        geometry = _parse_geometry(payload.get("emotional_geometry"))
        intersections = _parse_intersections(payload.get("intersections"))

        report(90, "Finalizing world...")
        created_at = int(self._clock() * 1000)
        world = WorldDefinition(
            id=f"world-{owner}-{created_at}",
            owner=owner,
            created_at=created_at,
            name=world_name,
            description=str(payload.get("description") or ""),
            taste_centroid=taste_centroid.tolist(),
            pca=pca,
            semantic_centroid=semantic_centroid.tolist(),
            feature_ranges=feature_ranges,
            emotional_geometry=geometry,
            keywords=_string_list(payload.get("keywords"), "keywords"),
            exclude_keywords=_string_list(payload.get("exclude_keywords"), "exclude_keywords"),
            top_genres=genres,
            top_artists=artist_ids,
            top_artist_names=artist_names,
            seed_track_ids=[s.id for s in seed_tracks],
            intersections=intersections,
            era_distribution=era_distribution(seeds),
            onboarding_answers=answers,
        )
        logger.info(
            f"Built world '{world.name}' from {format_count(len(seeds), 'seed')} "
            f"with {format_count(len(intersections), 'intersection')}"
        )
        return world

    def _pca(self, matrix: np.ndarray) -> PcaComponents:
        k = min(self.pca_components, matrix.shape[0] - 1)
        if k < 1:
            logger.debug("Fewer than two seeds, skipping PCA")
            return PcaComponents()
        result = principal_component_analysis(matrix, k)
        return PcaComponents(
            components=result.components.tolist(),
            explained_variance=result.explained_variance.tolist(),
        )

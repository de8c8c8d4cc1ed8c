"""
Data model for taste worlds, seed tracks and scored candidates.

Catalog payloads are parsed with from_dict(); persisted documents round-trip
through to_dict()/from_dict() as JSON-safe dicts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from taste_world.similarity.vector_math import (
    FEATURE_ORDER,
    audio_features_to_vector,
    vector_to_feature_map,
)

# Features tracked as [min, max] ranges over the seed set
RANGE_FEATURES: Tuple[str, ...] = (
    "valence",
    "energy",
    "acousticness",
    "tempo",
    "instrumentalness",
    "danceability",
)


@dataclass(frozen=True)
class AudioFeatures:
    """Raw per-track audio analysis as returned by the catalog."""

    id: str
    danceability: float
    energy: float
    speechiness: float
    acousticness: float
    instrumentalness: float
    liveness: float
    valence: float
    tempo: float
    loudness: float
    key: Optional[int] = None
    mode: Optional[int] = None
    duration_ms: Optional[int] = None
    time_signature: Optional[int] = None

    def to_vector(self) -> np.ndarray:
        return audio_features_to_vector(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            **{name: getattr(self, name) for name in FEATURE_ORDER},
            "key": self.key,
            "mode": self.mode,
            "duration_ms": self.duration_ms,
            "time_signature": self.time_signature,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "AudioFeatures":
        return AudioFeatures(
            id=str(payload.get("id", "")),
            **{name: float(payload[name]) for name in FEATURE_ORDER},
            key=payload.get("key"),
            mode=payload.get("mode"),
            duration_ms=payload.get("duration_ms"),
            time_signature=payload.get("time_signature"),
        )


@dataclass(frozen=True)
class ArtistRef:
    id: str
    name: str


@dataclass(frozen=True)
class AlbumRef:
    id: str
    name: str
    release_date: str = ""


@dataclass(frozen=True)
class Artist:
    """Artist metadata from a batched artist lookup."""

    id: str
    name: str
    genres: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Artist":
        return Artist(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            genres=tuple(payload.get("genres") or ()),
        )


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    uri: str
    artists: Tuple[ArtistRef, ...]
    album: AlbumRef
    popularity: int = 0
    duration_ms: int = 0

    @property
    def artist_ids(self) -> List[str]:
        return [a.id for a in self.artists]

    @property
    def primary_artist_name(self) -> str:
        return self.artists[0].name if self.artists else "Unknown Artist"

    @property
    def release_year(self) -> Optional[int]:
        date = self.album.release_date or ""
        if len(date) >= 4 and date[:4].isdigit():
            return int(date[:4])
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "uri": self.uri,
            "artists": [{"id": a.id, "name": a.name} for a in self.artists],
            "album": {
                "id": self.album.id,
                "name": self.album.name,
                "release_date": self.album.release_date,
            },
            "popularity": self.popularity,
            "duration_ms": self.duration_ms,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Track":
        album = payload.get("album") or {}
        return Track(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            uri=payload.get("uri") or f"spotify:track:{payload['id']}",
            artists=tuple(
                ArtistRef(id=str(a.get("id", "")), name=a.get("name", ""))
                for a in payload.get("artists") or ()
            ),
            album=AlbumRef(
                id=str(album.get("id") or ""),
                name=album.get("name", ""),
                release_date=album.get("release_date", "") or "",
            ),
            popularity=int(payload.get("popularity") or 0),
            duration_ms=int(payload.get("duration_ms") or 0),
        )


@dataclass(frozen=True)
class EnrichedTrack:
    """A seed track with its audio features and resolved genres."""

    track: Track
    audio_features: Optional[AudioFeatures]
    genres: Tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.track.id

    @property
    def release_year(self) -> Optional[int]:
        return self.track.release_year


@dataclass(frozen=True)
class EmotionalGeometry:
    """Three axes in [-1, 1]."""

    darkness_warmth: float = 0.0
    intimate_expansive: float = 0.0
    acoustic_electronic: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "darkness_warmth": self.darkness_warmth,
            "intimate_expansive": self.intimate_expansive,
            "acoustic_electronic": self.acoustic_electronic,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "EmotionalGeometry":
        return EmotionalGeometry(
            darkness_warmth=float(payload.get("darkness_warmth", 0.0)),
            intimate_expansive=float(payload.get("intimate_expansive", 0.0)),
            acoustic_electronic=float(payload.get("acoustic_electronic", 0.0)),
        )


@dataclass(frozen=True)
class Intersection:
    """
    A named point of view into a world.

    bias maps feature name -> signed offset from the world centroid.
    """

    name: str
    description: str
    bias: Dict[str, float] = field(default_factory=dict)
    bias_description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "bias": dict(self.bias),
            "bias_description": self.bias_description,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Intersection":
        return Intersection(
            name=payload["name"],
            description=payload.get("description", ""),
            bias={k: float(v) for k, v in (payload.get("bias") or {}).items()},
            bias_description=payload.get("bias_description", ""),
        )


@dataclass(frozen=True)
class PcaComponents:
    components: List[List[float]] = field(default_factory=list)
    explained_variance: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"components": self.components, "explained_variance": self.explained_variance}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "PcaComponents":
        return PcaComponents(
            components=[list(map(float, row)) for row in payload.get("components") or []],
            explained_variance=[float(v) for v in payload.get("explained_variance") or []],
        )


@dataclass
class OnboardingAnswers:
    """
    Structured questionnaire answers.

    responses: question id -> selected options
    custom: question id -> free text typed by the user
    """

    responses: Dict[str, List[str]] = field(default_factory=dict)
    custom: Dict[str, str] = field(default_factory=dict)
    custom_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {k: list(v) for k, v in self.responses.items()}
        for key, text in self.custom.items():
            payload[f"{key}_custom"] = text
        payload["custom_keywords"] = list(self.custom_keywords)
        return payload

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "OnboardingAnswers":
        responses: Dict[str, List[str]] = {}
        custom: Dict[str, str] = {}
        keywords: List[str] = []
        for key, value in (payload or {}).items():
            if key in ("custom_keywords", "customKeywords"):
                keywords = [str(v) for v in value or []]
            elif key.endswith("_custom"):
                if value:
                    custom[key[: -len("_custom")]] = str(value)
            elif isinstance(value, str):
                responses[key] = [value] if value else []
            else:
                responses[key] = [str(v) for v in value or []]
        return OnboardingAnswers(responses=responses, custom=custom, custom_keywords=keywords)


@dataclass(frozen=True)
class WorldDefinition:
    """
    A user's taste model. Replaced wholesale on rebuild, read-only afterwards.

    taste_centroid and pca are derived from the same seed feature matrix.
    """

    id: str
    owner: str
    created_at: int
    name: str
    description: str
    taste_centroid: List[float]
    pca: PcaComponents
    semantic_centroid: List[float]
    feature_ranges: Dict[str, Tuple[float, float]]
    emotional_geometry: EmotionalGeometry
    keywords: List[str] = field(default_factory=list)
    exclude_keywords: List[str] = field(default_factory=list)
    top_genres: List[str] = field(default_factory=list)
    top_artists: List[str] = field(default_factory=list)
    top_artist_names: List[str] = field(default_factory=list)
    seed_track_ids: List[str] = field(default_factory=list)
    intersections: List[Intersection] = field(default_factory=list)
    era_distribution: Dict[str, int] = field(default_factory=dict)
    onboarding_answers: Optional[OnboardingAnswers] = None

    def baseline_features(self) -> Dict[str, float]:
        """Centroid on the raw feature scale (tempo in BPM, loudness in dB)."""
        return vector_to_feature_map(self.taste_centroid)

    def get_intersection(self, name: str) -> Optional[Intersection]:
        for intersection in self.intersections:
            if intersection.name == name:
                return intersection
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "created_at": self.created_at,
            "name": self.name,
            "description": self.description,
            "taste_centroid": list(self.taste_centroid),
            "pca": self.pca.to_dict(),
            "semantic_centroid": list(self.semantic_centroid),
            "feature_ranges": {k: [lo, hi] for k, (lo, hi) in self.feature_ranges.items()},
            "emotional_geometry": self.emotional_geometry.to_dict(),
            "keywords": list(self.keywords),
            "exclude_keywords": list(self.exclude_keywords),
            "top_genres": list(self.top_genres),
            "top_artists": list(self.top_artists),
            "top_artist_names": list(self.top_artist_names),
            "seed_track_ids": list(self.seed_track_ids),
            "intersections": [i.to_dict() for i in self.intersections],
            "era_distribution": dict(self.era_distribution),
            "onboarding_answers": self.onboarding_answers.to_dict() if self.onboarding_answers else None,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "WorldDefinition":
        answers = payload.get("onboarding_answers")
        return WorldDefinition(
            id=payload["id"],
            owner=payload["owner"],
            created_at=int(payload.get("created_at", 0)),
            name=payload.get("name", ""),
            description=payload.get("description", ""),
            taste_centroid=[float(v) for v in payload.get("taste_centroid") or []],
            pca=PcaComponents.from_dict(payload.get("pca") or {}),
            semantic_centroid=[float(v) for v in payload.get("semantic_centroid") or []],
            feature_ranges={
                k: (float(v[0]), float(v[1])) for k, v in (payload.get("feature_ranges") or {}).items()
            },
            emotional_geometry=EmotionalGeometry.from_dict(payload.get("emotional_geometry") or {}),
            keywords=list(payload.get("keywords") or []),
            exclude_keywords=list(payload.get("exclude_keywords") or []),
            top_genres=list(payload.get("top_genres") or []),
            top_artists=list(payload.get("top_artists") or []),
            top_artist_names=list(payload.get("top_artist_names") or []),
            seed_track_ids=list(payload.get("seed_track_ids") or []),
            intersections=[Intersection.from_dict(i) for i in payload.get("intersections") or []],
            era_distribution={k: int(v) for k, v in (payload.get("era_distribution") or {}).items()},
            onboarding_answers=OnboardingAnswers.from_dict(answers) if answers else None,
        )


@dataclass
class CandidateTrack:
    """
    A harvested track. Fields fill in as it moves harvester -> scorer.

    score is written exactly once (see finalize_score); intersection biasing
    produces a separate derived value and never touches it.
    """

    track: Track
    audio_features: Optional[AudioFeatures] = None
    genres: List[str] = field(default_factory=list)
    semantic_score: Optional[float] = None
    spotify_score: Optional[float] = None
    novelty_bonus: Optional[float] = None
    diversity_bonus: Optional[float] = None
    score: Optional[float] = None

    @property
    def id(self) -> str:
        return self.track.id

    @property
    def artist_ids(self) -> List[str]:
        return self.track.artist_ids

    @property
    def album_id(self) -> str:
        return self.track.album.id

    @property
    def primary_genre(self) -> str:
        return self.genres[0] if self.genres else "unknown"

    def finalize_score(self, value: float) -> None:
        if self.score is not None:
            raise ValueError(f"score already set for track {self.id}")
        self.score = float(value)

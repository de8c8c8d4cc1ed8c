"""Test configuration and fixtures."""

import sys
import threading
from pathlib import Path

import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from taste_world.storage import InMemoryStore
from taste_world.world.types import (
    AlbumRef,
    Artist,
    ArtistRef,
    AudioFeatures,
    EmotionalGeometry,
    Intersection,
    PcaComponents,
    Track,
    WorldDefinition,
)
from taste_world.similarity.vector_math import audio_features_to_vector

BASE_FEATURES = {
    "danceability": 0.5,
    "energy": 0.5,
    "speechiness": 0.05,
    "acousticness": 0.5,
    "instrumentalness": 0.1,
    "liveness": 0.1,
    "valence": 0.5,
    "tempo": 120.0,
    "loudness": -8.0,
}


def build_track(track_id, artist_ids=("a1",), album_id=None, year=2001, name=None):
    """Synthetic catalog track."""
    return Track(
        id=track_id,
        name=name or f"Song {track_id}",
        uri=f"spotify:track:{track_id}",
        artists=tuple(ArtistRef(id=a, name=f"Artist {a}") for a in artist_ids),
        album=AlbumRef(
            id=album_id or f"album-{track_id}",
            name=f"Album {track_id}",
            release_date=f"{year}-01-01" if year else "",
        ),
        popularity=50,
    )


def build_features(track_id, **overrides):
    """Synthetic audio features: BASE_FEATURES with overrides."""
    values = dict(BASE_FEATURES)
    values.update(overrides)
    return AudioFeatures(id=track_id, **values)


def build_world(
    *,
    owner="alice",
    seed_track_ids=("s1", "s2", "s3", "s4", "s5"),
    intersections=None,
    feature_ranges=None,
    centroid_features=None,
    semantic_centroid=(1.0, 0.0, 0.0),
    top_artists=("a1",),
):
    """A hand-built world whose centroid is BASE_FEATURES (plus overrides)."""
    values = dict(BASE_FEATURES)
    values.update(centroid_features or {})
    if intersections is None:
        intersections = [
            Intersection(
                name="Dusk Room",
                description="The darker corner",
                bias={"valence": -0.15},
                bias_description="darker",
            )
        ]
    if feature_ranges is None:
        feature_ranges = {
            "valence": (0.3, 0.7),
            "energy": (0.3, 0.7),
            "acousticness": (0.3, 0.7),
            "tempo": (100.0, 140.0),
            "instrumentalness": (0.0, 0.2),
            "danceability": (0.4, 0.6),
        }
    return WorldDefinition(
        id=f"world-{owner}-1",
        owner=owner,
        created_at=1,
        name="Velvet Dirt Cathedral",
        description="You live somewhere dusty and warm.",
        taste_centroid=audio_features_to_vector(values).tolist(),
        pca=PcaComponents(),
        semantic_centroid=list(semantic_centroid),
        feature_ranges=feature_ranges,
        emotional_geometry=EmotionalGeometry(-0.2, 0.1, -0.5),
        keywords=["dusty", "reverent"],
        exclude_keywords=["polished"],
        top_genres=["slowcore"],
        top_artists=list(top_artists),
        top_artist_names=[f"Artist {a}" for a in top_artists],
        seed_track_ids=list(seed_track_ids),
        intersections=list(intersections),
    )


class FakeCatalog:
    """In-memory Catalog that records every call."""

    def __init__(self, tracks=(), features=None, artists=(), recommendations=()):
        self.tracks = {t.id: t for t in tracks}
        self.features = dict(features or {})
        self.artists = {a.id: a for a in artists}
        self.recommendations = list(recommendations)
        self.search_error = None
        self.create_error = None
        self.calls = []
        self.playlists = {}
        self.covers = {}
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)

    def call_names(self):
        return [c[0] for c in self.calls]

    def search_similar(self, seed_ids, target_features, limit):
        self._record("search_similar", list(seed_ids), dict(target_features), limit)
        if self.search_error is not None:
            raise self.search_error
        return list(self.recommendations)[:limit]

    def get_tracks(self, ids):
        self._record("get_tracks", list(ids))
        return [self.tracks[i] for i in ids if i in self.tracks]

    def batch_features(self, ids):
        self._record("batch_features", list(ids))
        return [self.features.get(i) for i in ids]

    def batch_artists(self, ids):
        self._record("batch_artists", list(ids))
        return [self.artists[i] for i in ids if i in self.artists]

    def create_playlist(self, owner, name, description, public=False):
        self._record("create_playlist", owner, name, description, public)
        if self.create_error is not None:
            raise self.create_error
        playlist_id = f"pl{len(self.playlists) + 1}"
        self.playlists[playlist_id] = {
            "owner": owner,
            "name": name,
            "description": description,
            "public": public,
            "uris": [],
        }
        return playlist_id

    def replace_tracks(self, playlist_id, uris):
        self._record("replace_tracks", playlist_id, list(uris))
        self.playlists[playlist_id]["uris"] = list(uris)

    def upload_cover(self, playlist_id, image_b64):
        self._record("upload_cover", playlist_id)
        self.covers[playlist_id] = image_b64


class FakeEmbedder:
    """Returns the same unit vector for every text, so semantic scores are all 1.0."""

    def __init__(self, vector=(1.0, 0.0, 0.0), max_batch_size=4):
        self.vector = list(vector)
        self.max_batch_size = max_batch_size
        self.batches = []

    def embed_batch(self, texts):
        self.batches.append(list(texts))
        return [list(self.vector) for _ in texts]


DEFAULT_EXTRACTION = {
    "emotional_geometry": {
        "darkness_warmth": -0.3,
        "intimate_expansive": 0.2,
        "acoustic_electronic": -0.6,
    },
    "keywords": ["dusty", "reverent", "handmade"],
    "exclude_keywords": ["polished", "aggressive"],
    "world_name": "Velvet Dirt Cathedral",
    "description": "You live somewhere between a chapel and a garage.",
    "intersections": [
        {
            "name": "Dusk Room",
            "description": "Where the light goes amber",
            "bias_description": "darker, more melancholic",
        }
    ],
}


class FakeExtractor:
    """Returns a canned extraction payload and records the prompts it was given."""

    def __init__(self, payload=None):
        self.payload = payload if payload is not None else dict(DEFAULT_EXTRACTION)
        self.calls = []

    def extract_world(self, transcript, taste_summary, top_genres, custom_keywords):
        self.calls.append({
            "transcript": transcript,
            "taste_summary": dict(taste_summary),
            "top_genres": list(top_genres),
            "custom_keywords": list(custom_keywords),
        })
        return self.payload


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def fake_catalog():
    return FakeCatalog()


@pytest.fixture()
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture()
def fake_extractor():
    return FakeExtractor()


@pytest.fixture()
def world():
    return build_world()


@pytest.fixture()
def seed_catalog():
    """Five seeds by artists a1..a5 whose valence spans 0.25..0.75 (mean 0.5)."""
    valences = [0.25, 0.375, 0.5, 0.625, 0.75]
    tracks = [
        build_track(f"s{i}", artist_ids=(f"a{i}",), year=1990 + 5 * i)
        for i in range(1, 6)
    ]
    features = {
        t.id: build_features(t.id, valence=v) for t, v in zip(tracks, valences)
    }
    artists = [Artist(id=f"a{i}", name=f"Artist a{i}", genres=("shoegaze",)) for i in range(1, 6)]
    return FakeCatalog(tracks=tracks, features=features, artists=artists)

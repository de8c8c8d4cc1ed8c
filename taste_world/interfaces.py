"""
Collaborator interfaces consumed by the taste world core.

Concrete implementations: spotify_client.SpotifyCatalog (Catalog),
openai_client.OpenAIWorldClient (Embedder + Extractor),
storage.InMemoryStore / storage.SqliteStore (KeyValueStore).
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from taste_world.world.types import Artist, AudioFeatures, Track


class Catalog(Protocol):
    def search_similar(
        self,
        seed_ids: Sequence[str],
        target_features: Mapping[str, float],
        limit: int,
    ) -> List[Track]:
        """Tracks similar to the seeds, nudged toward target feature values."""
        ...

    def get_tracks(self, ids: Sequence[str]) -> List[Track]:
        ...

    def batch_features(self, ids: Sequence[str]) -> List[Optional[AudioFeatures]]:
        """Features aligned with ids; None where the catalog has none."""
        ...

    def batch_artists(self, ids: Sequence[str]) -> List[Artist]:
        ...

    def create_playlist(self, owner: str, name: str, description: str, public: bool = False) -> str:
        """Create an empty playlist and return its id."""
        ...

    def replace_tracks(self, playlist_id: str, uris: Sequence[str]) -> None:
        ...

    def upload_cover(self, playlist_id: str, image_b64: str) -> None:
        ...


class Embedder(Protocol):
    max_batch_size: int

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class Extractor(Protocol):
    def extract_world(
        self,
        transcript: str,
        taste_summary: Mapping[str, Any],
        top_genres: Sequence[str],
        custom_keywords: Sequence[str],
    ) -> Dict[str, Any]:
        """
        Return the raw extraction payload:
        {emotional_geometry, keywords, exclude_keywords, world_name,
         description, intersections[{name, description, bias_description}]}
        """
        ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(
        self,
        key: str,
        value: Any,
        metadata: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> None:
        ...

    def list(self, prefix: str) -> List[Tuple[str, Dict[str, Any]]]:
        ...

    def delete(self, key: str) -> None:
        ...

"""
Playlist materialization: write bucketed playlists to the catalog and keep a
manifest of what was selected. Candidate lists are not persisted.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from taste_world.errors import TasteWorldError
from taste_world.interfaces import Catalog, KeyValueStore
from taste_world.logging_utils import redact
from taste_world.storage import manifest_key
from taste_world.world.types import WorldDefinition

from .diversity import Playlist

logger = logging.getLogger(__name__)

# (world, playlist) -> base64 JPEG, or None to skip the cover
CoverFactory = Callable[[WorldDefinition, Playlist], Optional[str]]


@dataclass
class ManifestEntry:
    name: str
    track_ids: List[str] = field(default_factory=list)
    playlist_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "track_ids": list(self.track_ids),
            "playlist_id": self.playlist_id,
            "error": self.error,
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "ManifestEntry":
        return ManifestEntry(
            name=payload["name"],
            track_ids=list(payload.get("track_ids") or []),
            playlist_id=payload.get("playlist_id"),
            error=payload.get("error"),
        )


@dataclass
class GenerationManifest:
    job_id: str
    world_id: str
    owner: str
    kind: str
    created_at: int
    playlists: List[ManifestEntry] = field(default_factory=list)

    @property
    def total_tracks(self) -> int:
        return sum(len(p.track_ids) for p in self.playlists)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "world_id": self.world_id,
            "owner": self.owner,
            "kind": self.kind,
            "created_at": self.created_at,
            "playlists": [p.to_dict() for p in self.playlists],
        }

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "GenerationManifest":
        return GenerationManifest(
            job_id=payload["job_id"],
            world_id=payload["world_id"],
            owner=payload["owner"],
            kind=payload.get("kind", "generate"),
            created_at=int(payload.get("created_at", 0)),
            playlists=[ManifestEntry.from_dict(p) for p in payload.get("playlists") or []],
        )


def save_manifest(store: KeyValueStore, manifest: GenerationManifest) -> str:
    key = manifest_key(manifest.owner, manifest.job_id)
    store.set(
        key,
        manifest.to_dict(),
        metadata={"world_id": manifest.world_id, "kind": manifest.kind, "created_at": manifest.created_at},
    )
    return key


class PlaylistMaterializer:
    """Creates one private catalog playlist per non-empty bucketed playlist."""

    def __init__(
        self,
        catalog: Catalog,
        cover_factory: Optional[CoverFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.catalog = catalog
        self.cover_factory = cover_factory
        self._clock = clock

    def materialize(
        self,
        playlists: Sequence[Playlist],
        world: WorldDefinition,
        *,
        job_id: str,
        kind: str = "generate",
    ) -> GenerationManifest:
        manifest = GenerationManifest(
            job_id=job_id,
            world_id=world.id,
            owner=world.owner,
            kind=kind,
            created_at=int(self._clock() * 1000),
        )
        for playlist in playlists:
            manifest.playlists.append(self._materialize_one(playlist, world))
        return manifest

    def _materialize_one(self, playlist: Playlist, world: WorldDefinition) -> ManifestEntry:
        entry = ManifestEntry(name=playlist.name, track_ids=playlist.track_ids)
        if not playlist.tracks:
            logger.info(f"Skipping empty playlist '{playlist.name}'")
            return entry

        try:
            entry.playlist_id = self.catalog.create_playlist(
                world.owner,
                f"{world.name}: {playlist.name}",
                playlist.description,
                public=False,
            )
            self.catalog.replace_tracks(entry.playlist_id, playlist.uris)
        except TasteWorldError as e:
            entry.error = redact(f"{type(e).__name__}: {e}")
            logger.error(f"Failed to materialize '{playlist.name}': {entry.error}")
            return entry

        if self.cover_factory is not None:
            self._upload_cover(entry.playlist_id, playlist, world)

        logger.info(f"Materialized '{playlist.name}' with {len(playlist.tracks)} tracks")
        return entry

    def _upload_cover(self, playlist_id: str, playlist: Playlist, world: WorldDefinition) -> None:
        image = self.cover_factory(world, playlist)
        if not image:
            return
        try:
            self.catalog.upload_cover(playlist_id, image)
        except TasteWorldError as e:
            logger.warning(f"Cover upload failed for '{playlist.name}': {e}")

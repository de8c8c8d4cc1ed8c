from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from taste_world.errors import InsufficientSeedData, UpstreamUnavailable
from taste_world.interfaces import Catalog, KeyValueStore
from taste_world.logging_utils import RunSummary, format_count, stage_timer
from taste_world.storage import cache_tracks, get_cached_track, save_world
from taste_world.world.builder import TasteWorldBuilder
from taste_world.world.types import EnrichedTrack, OnboardingAnswers, Track, WorldDefinition

from .candidate_pool import CandidateHarvester, remove_seed_tracks
from .diversity import DiversityBucketer, Playlist
from .materializer import GenerationManifest, PlaylistMaterializer, save_manifest
from .scoring import ScoringEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def _noop_progress(pct: int, step: str) -> None:
    return None


@dataclass(frozen=True)
class GenerationResult:
    manifest: GenerationManifest
    playlists: List[Playlist]
    stats: Dict[str, Any]


def fetch_seed_tracks(
    *,
    catalog: Catalog,
    store: KeyValueStore,
    seed_ids: Sequence[str],
) -> List[Track]:
    """Seed tracks in seed order, served from the track cache where possible."""
    by_id: Dict[str, Track] = {}
    missing: List[str] = []
    for track_id in seed_ids:
        cached = get_cached_track(store, track_id)
        if cached is not None:
            by_id[track_id] = cached
        else:
            missing.append(track_id)

    if missing:
        fetched = catalog.get_tracks(missing)
        cache_tracks(store, fetched)
        for track in fetched:
            by_id[track.id] = track

    logger.debug(f"Seed tracks: {len(seed_ids) - len(missing)} cached, {len(missing)} fetched")
    return [by_id[t] for t in seed_ids if t in by_id]


def enrich_seed_tracks(
    *,
    catalog: Catalog,
    tracks: Sequence[Track],
    progress: ProgressCallback = _noop_progress,
) -> List[EnrichedTrack]:
    progress(25, "Analyzing audio features...")
    features = catalog.batch_features([t.id for t in tracks])
    if len(features) != len(tracks):
        raise UpstreamUnavailable(
            f"Catalog returned {len(features)} feature rows for {len(tracks)} tracks"
        )

    progress(35, "Fetching artist genres...")
    artist_ids: List[str] = []
    for track in tracks:
        for artist_id in track.artist_ids:
            if artist_id and artist_id not in artist_ids:
                artist_ids.append(artist_id)
    genres_by_artist = {a.id: a.genres for a in catalog.batch_artists(artist_ids)} if artist_ids else {}

    progress(45, "Enriching track data...")
    enriched: List[EnrichedTrack] = []
    for track, feats in zip(tracks, features):
        genres: List[str] = []
        for artist_id in track.artist_ids:
            for genre in genres_by_artist.get(artist_id, ()):
                if genre not in genres:
                    genres.append(genre)
        enriched.append(EnrichedTrack(track=track, audio_features=feats, genres=tuple(genres)))
    return enriched


def run_build(
    *,
    catalog: Catalog,
    builder: TasteWorldBuilder,
    store: KeyValueStore,
    owner: str,
    seed_ids: Sequence[str],
    answers: OnboardingAnswers,
    progress: ProgressCallback = _noop_progress,
) -> WorldDefinition:
    """
    Build and persist a world for ``owner``.

    Fails with InsufficientSeedData before any catalog call when seed_ids is
    empty, and after enrichment when no seed has audio features.
    """
    if not seed_ids:
        raise InsufficientSeedData("No seed tracks given")

    summary = RunSummary("World Build", logger)

    progress(10, "Fetching seed tracks...")
    with stage_timer("Seed fetch", logger, summary):
        tracks = fetch_seed_tracks(catalog=catalog, store=store, seed_ids=seed_ids)
    summary.add("seeds_requested", len(seed_ids))
    summary.add("seeds_found", len(tracks))

    with stage_timer("Seed enrichment", logger, summary):
        enriched = enrich_seed_tracks(catalog=catalog, tracks=tracks, progress=progress)
    summary.add("seeds_with_features", sum(1 for e in enriched if e.audio_features is not None))

    with stage_timer("World model", logger, summary):
        world = builder.build(enriched, answers, owner=owner, progress=progress)

    progress(95, "Saving world...")
    save_world(store, world)

    summary.add("world", world.name)
    summary.add("intersections", len(world.intersections))
    summary.log()
    return world


def run_generate(
    *,
    harvester: CandidateHarvester,
    scorer: ScoringEngine,
    bucketer: DiversityBucketer,
    materializer: PlaylistMaterializer,
    store: KeyValueStore,
    world: WorldDefinition,
    job_id: str,
    kind: str = "generate",
    only: Optional[str] = None,
    progress: ProgressCallback = _noop_progress,
) -> GenerationResult:
    """
    Harvest -> score -> bucket -> materialize for one world.

    ``only`` restricts bucketing and materialization to a single intersection.
    An empty candidate pool still produces (empty) playlists.
    """
    summary = RunSummary("Playlist Generation", logger)

    progress(10, "Harvesting candidates...")
    with stage_timer("Candidate harvest", logger, summary):
        tracks = harvester.collect(world)
    summary.add("candidates_harvested", len(tracks))

    progress(20, "Removing seed tracks...")
    tracks = remove_seed_tracks(tracks, world.seed_track_ids)
    summary.add("after_blocklist", len(tracks))
    candidates = harvester.to_candidates(tracks)

    with stage_timer("Scoring", logger, summary):
        scoring = scorer.run(candidates, world, progress=progress)
    summary.add("after_coarse_filter", scoring.stats.get("after_coarse_filter", 0))
    summary.add("scored", len(scoring.scored))

    progress(80, "Bucketing intersections...")
    with stage_timer("Bucketing", logger, summary):
        playlists = bucketer.bucket(scoring.scored, world, only=only)

    progress(90, "Creating playlists...")
    with stage_timer("Materialization", logger, summary):
        manifest = materializer.materialize(playlists, world, job_id=job_id, kind=kind)
    save_manifest(store, manifest)

    summary.add("playlists", len(playlists))
    summary.add("tracks_selected", manifest.total_tracks)
    summary.log()
    logger.info(
        f"Generated {format_count(len(playlists), 'playlist')} "
        f"with {format_count(manifest.total_tracks, 'track')} for '{world.name}'"
    )

    stats = dict(summary.metrics)
    stats.update({f"scoring_{k}": v for k, v in scoring.stats.items()})
    return GenerationResult(manifest=manifest, playlists=playlists, stats=stats)

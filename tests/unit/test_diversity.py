"""Tests for intersection biasing and diversity-capped selection."""
import random
from collections import Counter

import pytest

from taste_world.playlist.config import BucketConfig
from taste_world.playlist.diversity import (
    DiversityBucketer,
    biased_score,
    resolve_targets,
    select_diverse,
)
from taste_world.world.types import CandidateTrack, Intersection, Track

from conftest import build_features, build_track, build_world


def _scored(track_id, score, artist_ids=("x",), album_id=None, genres=("g",), **features):
    candidate = CandidateTrack(
        track=build_track(track_id, artist_ids=artist_ids, album_id=album_id),
        audio_features=build_features(track_id, **features),
        genres=list(genres),
    )
    candidate.finalize_score(score)
    return candidate


class TestTargets:
    def test_targets_are_baseline_plus_delta(self, world):
        intersection = Intersection("Slow", "", bias={"valence": -0.15, "tempo": -10.0})
        targets = resolve_targets(world, intersection)
        assert targets == pytest.approx({"valence": 0.35, "tempo": 110.0})

    def test_unknown_feature_ignored(self, world):
        intersection = Intersection("Odd", "", bias={"sparkle": 0.3})
        assert resolve_targets(world, intersection) == {}


class TestBiasedScore:
    def test_proximity_reward(self):
        cfg = BucketConfig()
        candidate = _scored("c", 0.5, valence=0.35, tempo=130.0)
        score = biased_score(candidate, {"valence": 0.35, "tempo": 110.0}, cfg)
        assert score == pytest.approx(0.5 + 1.0 * 0.1 + 0.8 * 0.1)

    def test_tempo_term_never_negative(self):
        candidate = _scored("c", 0.5, tempo=300.0)
        assert biased_score(candidate, {"tempo": 100.0}, BucketConfig()) == pytest.approx(0.5)

    def test_no_bias_keeps_base_score(self):
        candidate = _scored("c", 0.42)
        assert biased_score(candidate, {}, BucketConfig()) == 0.42

    def test_unscored_candidate_rejected(self):
        candidate = CandidateTrack(track=build_track("c"), audio_features=build_features("c"))
        with pytest.raises(ValueError):
            biased_score(candidate, {}, BucketConfig())


class TestSelectDiverse:
    def test_skips_repeat_artist_album_and_full_genre(self):
        ranked = [
            (_scored("c1", 0.9, artist_ids=("x1",), genres=("g1",)), 0.9),
            (_scored("c2", 0.8, artist_ids=("x1", "x9"), genres=("g2",)), 0.8),
            (_scored("c3", 0.7, artist_ids=("x3",), album_id="album-c1", genres=("g2",)), 0.7),
            (_scored("c4", 0.6, artist_ids=("x4",), genres=("g1",)), 0.6),
            (_scored("c5", 0.5, artist_ids=("x5",), genres=("g2",)), 0.5),
        ]
        selected, skipped = select_diverse(ranked=ranked, cfg=BucketConfig(genre_cap=1))
        assert [c.id for c, _ in selected] == ["c1", "c5"]
        assert skipped == {"artist": 1, "album": 1, "genre": 1}

    def test_missing_album_ids_do_not_collide(self):
        ranked = []
        for i in range(3):
            track = Track.from_dict({"id": f"c{i}", "artists": [{"id": f"x{i}"}], "album": {"id": None}})
            candidate = CandidateTrack(track=track, audio_features=build_features(f"c{i}"), genres=[f"g{i}"])
            candidate.finalize_score(1.0)
            ranked.append((candidate, 1.0))

        assert ranked[0][0].album_id == ""
        selected, skipped = select_diverse(ranked=ranked, cfg=BucketConfig())
        assert [c.id for c, _ in selected] == ["c0", "c1", "c2"]
        assert skipped == {}

    def test_stops_at_playlist_size(self):
        ranked = [(_scored(f"c{i}", 1.0, artist_ids=(f"x{i}",), genres=(f"g{i}",)), 1.0) for i in range(10)]
        selected, _ = select_diverse(ranked=ranked, cfg=BucketConfig(playlist_size=3))
        assert [c.id for c, _ in selected] == ["c0", "c1", "c2"]


class TestBucketer:
    def test_empty_pool_gives_empty_playlists(self, world):
        playlists = DiversityBucketer().bucket([], world)
        assert len(playlists) == 1
        assert playlists[0].name == "Dusk Room"
        assert playlists[0].tracks == []

    def test_bias_reorders_but_leaves_score_untouched(self):
        world = build_world(intersections=[
            Intersection("Dark", "", bias={"valence": -0.15}),
            Intersection("Bright", "", bias={"valence": 0.15}),
        ])
        dark = _scored("dark", 0.70, artist_ids=("x1",), valence=0.35)
        bright = _scored("bright", 0.70, artist_ids=("x2",), valence=0.65)

        dark_list, bright_list = DiversityBucketer().bucket([bright, dark], world)
        assert dark_list.track_ids == ["dark", "bright"]
        assert bright_list.track_ids == ["bright", "dark"]
        assert dark.score == 0.70
        assert bright.score == 0.70
        assert dark_list.biased_scores[0] == pytest.approx(0.80)

    def test_ties_keep_pool_order(self, world):
        a = _scored("a", 0.5, artist_ids=("x1",))
        b = _scored("b", 0.5, artist_ids=("x2",))
        [playlist] = DiversityBucketer().bucket([b, a], world)
        assert playlist.track_ids == ["b", "a"]

    def test_window_limits_considered_candidates(self, world):
        pool = [
            _scored(f"c{i}", 1.0 - i * 0.01, artist_ids=(f"x{i}",), genres=(f"g{i}",))
            for i in range(10)
        ]
        bucketer = DiversityBucketer(BucketConfig(window_size=4))
        [playlist] = bucketer.bucket(pool, world)
        assert playlist.track_ids == ["c0", "c1", "c2", "c3"]
        assert playlist.stats["window"] == 4

    def test_only_restricts_to_one_intersection(self):
        world = build_world(intersections=[
            Intersection("One", ""),
            Intersection("Two", ""),
        ])
        playlists = DiversityBucketer().bucket([], world, only="Two")
        assert [p.name for p in playlists] == ["Two"]
        with pytest.raises(KeyError):
            DiversityBucketer().bucket([], world, only="Three")

    def test_constraints_hold_on_random_pools(self, world):
        rng = random.Random(1234)
        cfg = BucketConfig(window_size=80, playlist_size=50, genre_cap=8)
        for _ in range(20):
            pool = [
                _scored(
                    f"c{i}",
                    rng.random(),
                    artist_ids=tuple({f"x{rng.randrange(40)}" for _ in range(rng.randint(1, 2))}),
                    album_id=f"al{rng.randrange(60)}",
                    genres=(f"g{rng.randrange(6)}",),
                    valence=rng.random(),
                )
                for i in range(rng.randint(0, 150))
            ]
            [playlist] = DiversityBucketer(cfg).bucket(pool, world)

            assert len(playlist.tracks) <= cfg.playlist_size
            artists = [a for c in playlist.tracks for a in c.artist_ids]
            assert len(artists) == len(set(artists))
            albums = [c.album_id for c in playlist.tracks]
            assert len(albums) == len(set(albums))
            assert all(n <= cfg.genre_cap for n in Counter(c.primary_genre for c in playlist.tracks).values())
            assert playlist.biased_scores == sorted(playlist.biased_scores, reverse=True)

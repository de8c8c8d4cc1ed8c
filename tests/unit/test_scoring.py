"""Tests for candidate scoring."""
import math

import pytest

from taste_world.errors import UpstreamUnavailable
from taste_world.playlist.config import NOVELTY_BONUS, SCORE_WEIGHTS
from taste_world.playlist.scoring import (
    ScoringEngine,
    diversity_bonus,
    final_score,
    passes_coarse_filter,
)
from taste_world.world.types import Artist, CandidateTrack

from conftest import FakeCatalog, FakeEmbedder, build_features, build_track, build_world


def _candidate(track_id, artist_ids=("x1",), **features):
    track = build_track(track_id, artist_ids=artist_ids)
    return CandidateTrack(track=track, audio_features=build_features(track_id, **features))


def test_score_weights_sum_to_one():
    assert math.isclose(sum(SCORE_WEIGHTS), 1.0)


def test_final_score_formula():
    assert final_score(
        semantic_score=0.5,
        spotify_score=0.8,
        novelty_bonus=0.15,
        diversity_bonus=0.1,
    ) == pytest.approx(0.4 * 0.5 + 0.3 * 0.8 + 0.2 * 0.15 + 0.1 * 0.1)


@pytest.mark.parametrize(
    "average,expected",
    [(1, 0.10), (9.99, 0.10), (10, 0.05), (29, 0.05), (30, 0.0), (1000, 0.0)],
)
def test_diversity_bonus_steps(average, expected):
    assert diversity_bonus(average) == expected


class TestCoarseFilter:
    @pytest.mark.parametrize(
        "features,expected",
        [
            ({}, True),
            ({"valence": 0.1}, True),     # 0.3 - 0.2 padding
            ({"valence": 0.05}, False),
            ({"energy": 0.95}, False),
            ({"tempo": 160.0}, True),     # 140 + 20 padding
            ({"tempo": 161.0}, False),
            ({"acousticness": 0.1}, True),
            ({"acousticness": 0.05}, False),
            ({"acousticness": 1.0}, True),  # no upper bound on acousticness
        ],
    )
    def test_ranges_with_padding(self, world, features, expected):
        assert passes_coarse_filter(_candidate("c", **features), world) is expected

    def test_missing_features_fail(self, world):
        candidate = CandidateTrack(track=build_track("c"))
        assert passes_coarse_filter(candidate, world) is False


class TestScoringEngine:
    def _catalog(self, candidates, missing_features=()):
        features = {
            c.id: c.audio_features for c in candidates if c.id not in missing_features
        }
        artists = [
            Artist(id="x1", name="X1", genres=("dream pop", "shoegaze")),
            Artist(id="x2", name="X2", genres=("dream pop",)),
            Artist(id="x3", name="X3", genres=()),
            Artist(id="a1", name="A1", genres=("slowcore",)),
        ]
        return FakeCatalog(features=features, artists=artists)

    def _pool(self):
        # fresh candidates without features attached: the engine fetches them
        specs = [
            ("c1", ("x1",), {"valence": 0.5}),
            ("c2", ("x2", "x1"), {"valence": 0.4}),
            ("c3", ("a1",), {"valence": 0.5}),
            ("c4", ("x3",), {"valence": 0.5}),
            ("c5", ("ghost",), {"valence": 0.5}),
            ("c6", ("x1",), {"tempo": 200.0}),
        ]
        catalog_view = [_candidate(tid, artists, **f) for tid, artists, f in specs]
        fresh = [CandidateTrack(track=c.track) for c in catalog_view]
        return catalog_view, fresh

    def test_pipeline_scores_and_drops(self, world):
        catalog_view, fresh = self._pool()
        catalog = self._catalog(catalog_view, missing_features=("c4",))
        engine = ScoringEngine(catalog, FakeEmbedder())
        progress = []

        result = engine.run(fresh, world, progress=lambda p, s: progress.append(p))

        # c4 has no features, c6 fails the tempo filter, c5's artist does not resolve
        assert [c.id for c in result.scored] == ["c1", "c2", "c3"]
        assert result.stats == {
            "input": 6,
            "with_features": 5,
            "after_coarse_filter": 4,
            "with_genres": 3,
            "scored": 3,
        }
        assert progress == [30, 40, 50, 60, 70]

        c1, c2, c3 = result.scored
        assert c2.genres == ["dream pop", "shoegaze"]
        assert c1.semantic_score == pytest.approx(1.0)
        assert c1.spotify_score == pytest.approx(1.0)
        assert c2.spotify_score == pytest.approx(0.9)
        assert c1.novelty_bonus == NOVELTY_BONUS
        assert c3.novelty_bonus == 0.0  # a1 is one of the world's top artists
        assert all(c.diversity_bonus == 0.10 for c in result.scored)
        assert c1.score == pytest.approx(0.4 + 0.3 + 0.2 * 0.15 + 0.1 * 0.1)
        assert c3.score == pytest.approx(0.4 + 0.3 + 0.1 * 0.1)

    def test_resolved_artist_without_genres_gets_no_diversity_bonus(self, world):
        candidate = _candidate("c4", ("x3",))
        catalog = self._catalog([candidate])
        [scored] = ScoringEngine(catalog, FakeEmbedder()).score(
            [CandidateTrack(track=candidate.track)], world
        )
        assert scored.genres == []
        assert scored.primary_genre == "unknown"
        assert scored.diversity_bonus == 0.0

    def test_empty_pool_makes_no_calls(self, world):
        catalog = FakeCatalog()
        result = ScoringEngine(catalog, FakeEmbedder()).run([], world)
        assert result.scored == []
        assert catalog.calls == []

    def test_misaligned_feature_response(self, world):
        catalog = FakeCatalog()
        catalog.batch_features = lambda ids: []
        with pytest.raises(UpstreamUnavailable):
            ScoringEngine(catalog, FakeEmbedder()).run([CandidateTrack(track=build_track("c1"))], world)

    def test_score_written_once(self, world):
        candidate = _candidate("c1")
        candidate.finalize_score(0.5)
        with pytest.raises(ValueError):
            candidate.finalize_score(0.6)

    def test_spotify_score_may_be_negative(self, world):
        far = _candidate("far", loudness=-60.0, danceability=1.0, speechiness=1.0, liveness=1.0)
        catalog = self._catalog([far])
        engine = ScoringEngine(catalog, FakeEmbedder())
        pool = engine.attach_features([CandidateTrack(track=far.track)])
        engine.attach_similarity_scores(pool, world)
        assert pool[0].spotify_score < 0

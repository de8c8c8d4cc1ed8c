"""Tests for the candidate harvest plan and CandidateHarvester."""
import pytest

from taste_world.errors import NoSeedTracks, UpstreamUnavailable
from taste_world.playlist.candidate_pool import (
    CandidateHarvester,
    dedupe_tracks,
    plan_harvest_calls,
    remove_seed_tracks,
)
from taste_world.playlist.config import default_harvest_config

from conftest import FakeCatalog, build_track, build_world


def _seed_ids(n):
    return [f"s{i}" for i in range(1, n + 1)]


class TestPlan:
    def test_slices_are_disjoint_and_capped(self):
        world = build_world(seed_track_ids=_seed_ids(40))
        calls = plan_harvest_calls(world, default_harvest_config())
        assert [c.label for c in calls] == [
            "unbiased", "centroid", "tempo", "darker", "organic", "danceability",
        ]
        assert calls[0].seed_ids == _seed_ids(5)
        assert calls[1].seed_ids == ["s6", "s7", "s8", "s9", "s10"]
        flat = [s for c in calls for s in c.seed_ids]
        assert len(flat) == len(set(flat)) == 30

    def test_small_seed_set_uses_fewer_calls(self):
        world = build_world(seed_track_ids=_seed_ids(12))
        calls = plan_harvest_calls(world, default_harvest_config())
        assert [c.label for c in calls] == ["unbiased", "centroid", "tempo"]
        assert calls[2].seed_ids == ["s11", "s12"]

    def test_danceability_needs_thirty_seeds(self):
        cfg = default_harvest_config({"slice_size": 1})
        calls = plan_harvest_calls(build_world(seed_track_ids=_seed_ids(29)), cfg)
        assert "danceability" not in [c.label for c in calls]

    def test_target_profiles(self):
        world = build_world(centroid_features={"valence": 0.1, "energy": 0.5, "acousticness": 0.9})
        cfg = default_harvest_config({"slice_size": 1})
        calls = {c.label: c for c in plan_harvest_calls(world, cfg)}

        assert calls["unbiased"].target_features == {}
        assert calls["centroid"].target_features == pytest.approx(
            {"valence": 0.1, "energy": 0.5, "acousticness": 0.9}
        )
        assert calls["tempo"].target_features == pytest.approx({"tempo": 120.0, "instrumentalness": 0.1})
        # darker is floored at 0, organic capped at 1
        assert calls["darker"].target_features == pytest.approx({"valence": 0.0, "energy": 0.4})
        assert calls["organic"].target_features == pytest.approx({"acousticness": 1.0})

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            default_harvest_config({"per_call_limit": 500})
        with pytest.raises(ValueError):
            default_harvest_config({"slice_size": 0})


def test_dedupe_keeps_first_occurrence():
    a1 = build_track("a", album_id="first")
    a2 = build_track("a", album_id="second")
    b = build_track("b")
    merged = dedupe_tracks([[a1, b], [a2]])
    assert [t.id for t in merged] == ["a", "b"]
    assert merged[0].album.id == "first"


def test_remove_seed_tracks():
    tracks = [build_track("s1"), build_track("c1")]
    assert [t.id for t in remove_seed_tracks(tracks, ["s1"])] == ["c1"]


class TestHarvester:
    def test_no_seed_tracks(self):
        harvester = CandidateHarvester(FakeCatalog())
        with pytest.raises(NoSeedTracks):
            harvester.collect(build_world(seed_track_ids=()))

    def test_merges_in_call_order_and_drops_seeds(self):
        catalog = FakeCatalog()

        def search(seed_ids, target_features, limit):
            catalog._record("search_similar", list(seed_ids), dict(target_features), limit)
            first = seed_ids[0]
            # every call returns one shared track plus one of its own
            return [build_track(f"c-{first}"), build_track("shared", album_id=first), build_track("s1")]

        catalog.search_similar = search
        world = build_world(seed_track_ids=_seed_ids(10))
        candidates = CandidateHarvester(catalog).harvest(world)

        assert [c.id for c in candidates] == ["c-s1", "shared", "c-s6"]
        # first occurrence wins: the unbiased call (seed s1) returned it first
        assert candidates[1].album_id == "s1"
        assert all(c.score is None for c in candidates)

    def test_per_call_limit_passed_through(self):
        catalog = FakeCatalog(recommendations=[build_track("c1")])
        harvester = CandidateHarvester(catalog, default_harvest_config({"per_call_limit": 40}))
        harvester.collect(build_world())
        assert catalog.calls[0][3] == 40

    def test_single_failed_call_is_skipped(self):
        catalog = FakeCatalog()

        def search(seed_ids, target_features, limit):
            if seed_ids[0] == "s1":
                raise UpstreamUnavailable("boom", status_code=502)
            return [build_track("c-ok")]

        catalog.search_similar = search
        tracks = CandidateHarvester(catalog).collect(build_world(seed_track_ids=_seed_ids(10)))
        assert [t.id for t in tracks] == ["c-ok"]

    def test_all_calls_failing_raises(self):
        catalog = FakeCatalog()
        catalog.search_error = UpstreamUnavailable("down")
        with pytest.raises(UpstreamUnavailable):
            CandidateHarvester(catalog).collect(build_world(seed_track_ids=_seed_ids(10)))

    def test_unexpected_error_in_one_call_is_skipped(self):
        catalog = FakeCatalog()

        def search(seed_ids, target_features, limit):
            if seed_ids[0] == "s6":
                raise ValueError("Expecting value: line 1 column 1 (char 0)")
            return [build_track(f"c-{seed_ids[0]}")]

        catalog.search_similar = search
        tracks = CandidateHarvester(catalog).collect(build_world(seed_track_ids=_seed_ids(10)))
        assert [t.id for t in tracks] == ["c-s1"]

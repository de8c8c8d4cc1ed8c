"""
Spotify Web API Client - Catalog implementation for harvesting, enrichment
and playlist writes
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from .errors import UpstreamRateLimited, UpstreamUnavailable
from .rate_limiter import FixedWindowRateLimiter
from .retry_helper import retry_with_backoff
from .world.types import Artist, AudioFeatures, Track

logger = logging.getLogger(__name__)

TRACKS_BATCH = 50
FEATURES_BATCH = 100
ARTISTS_BATCH = 50
PLAYLIST_TRACKS_BATCH = 100


def _chunks(items: Sequence[Any], size: int):
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


class SpotifyCatalog:
    """Client for the Spotify Web API"""

    DEFAULT_BASE_URL = "https://api.spotify.com/v1"

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        session: Optional[requests.Session] = None,
        max_retries: int = 3,
        timeout: float = 10.0,
    ):
        """
        Initialize Spotify client

        Args:
            access_token: OAuth bearer token for the user
            base_url: API root
            rate_limiter: Shared request window (default 150 requests / 60s)
            session: Optional requests session (tests inject a mock)
            max_retries: Retries for rate-limited requests
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(max_requests=150, window_seconds=60.0)
        self.timeout = timeout
        self._request = retry_with_backoff(
            max_retries=max_retries,
            initial_delay=1.0,
            exceptions=(UpstreamRateLimited,),
        )(self._request_once)

        logger.debug(f"Initialized Spotify client ({self.base_url})")

    def _request_once(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Make one rate-limited request

        Raises:
            UpstreamRateLimited: HTTP 429 (carries Retry-After)
            UpstreamUnavailable: any other failure
        """
        self.rate_limiter.wait()
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise UpstreamUnavailable(f"Spotify request timed out: {method} {path}") from e
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f"Spotify request failed: {method} {path}: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            try:
                delay = float(retry_after)
            except ValueError:
                delay = 1.0
            logger.warning(f"Rate limited by Spotify, retry after {delay:.0f}s")
            raise UpstreamRateLimited(f"Spotify rate limit on {method} {path}", retry_after=delay)

        if not 200 <= response.status_code < 300:
            raise UpstreamUnavailable(
                f"Spotify API error {response.status_code} on {method} {path}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"Spotify returned a non-JSON body on {method} {path}",
                status_code=response.status_code,
            ) from e

    # Read side ----------------------------------------------------------
    def search_similar(
        self,
        seed_ids: Sequence[str],
        target_features: Mapping[str, float],
        limit: int,
    ) -> List[Track]:
        """Recommendations seeded by up to 5 tracks, with target_* feature hints"""
        params: Dict[str, Any] = {
            "seed_tracks": ",".join(seed_ids[:5]),
            "limit": min(int(limit), 100),
        }
        for feature, value in target_features.items():
            params[f"target_{feature}"] = round(float(value), 4)

        payload = self._request("GET", "/recommendations", params=params) or {}
        return [Track.from_dict(t) for t in payload.get("tracks") or [] if t and t.get("id")]

    def get_tracks(self, ids: Sequence[str]) -> List[Track]:
        tracks: List[Track] = []
        for batch in _chunks(ids, TRACKS_BATCH):
            payload = self._request("GET", "/tracks", params={"ids": ",".join(batch)}) or {}
            tracks.extend(Track.from_dict(t) for t in payload.get("tracks") or [] if t)
        return tracks

    def batch_features(self, ids: Sequence[str]) -> List[Optional[AudioFeatures]]:
        """Audio features aligned with ids (None where Spotify has none)"""
        features: List[Optional[AudioFeatures]] = []
        for batch in _chunks(ids, FEATURES_BATCH):
            payload = self._request("GET", "/audio-features", params={"ids": ",".join(batch)}) or {}
            rows = payload.get("audio_features") or []
            by_id = {row["id"]: row for row in rows if row}
            for track_id in batch:
                row = by_id.get(track_id)
                features.append(AudioFeatures.from_dict(row) if row else None)
        return features

    def batch_artists(self, ids: Sequence[str]) -> List[Artist]:
        artists: List[Artist] = []
        for batch in _chunks(ids, ARTISTS_BATCH):
            payload = self._request("GET", "/artists", params={"ids": ",".join(batch)}) or {}
            artists.extend(Artist.from_dict(a) for a in payload.get("artists") or [] if a)
        return artists

    # Write side ---------------------------------------------------------
    def create_playlist(self, owner: str, name: str, description: str, public: bool = False) -> str:
        payload = self._request(
            "POST",
            f"/users/{owner}/playlists",
            json_body={"name": name, "description": description, "public": public},
        ) or {}
        playlist_id = payload.get("id")
        if not playlist_id:
            raise UpstreamUnavailable(f"Spotify did not return an id for playlist '{name}'")
        logger.info(f"Created playlist '{name}' ({playlist_id})")
        return playlist_id

    def replace_tracks(self, playlist_id: str, uris: Sequence[str]) -> None:
        """First 100 uris replace the playlist contents, the rest are appended"""
        uris = list(uris)
        self._request("PUT", f"/playlists/{playlist_id}/tracks", json_body={"uris": uris[:PLAYLIST_TRACKS_BATCH]})
        for batch in _chunks(uris[PLAYLIST_TRACKS_BATCH:], PLAYLIST_TRACKS_BATCH):
            self._request("POST", f"/playlists/{playlist_id}/tracks", json_body={"uris": batch})

    def upload_cover(self, playlist_id: str, image_b64: str) -> None:
        self._request(
            "PUT",
            f"/playlists/{playlist_id}/images",
            data=image_b64.encode("ascii"),
            headers={"Content-Type": "image/jpeg"},
        )

    def close(self):
        self.session.close()

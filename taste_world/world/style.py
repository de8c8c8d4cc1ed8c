"""
Deterministic style tags and the text template used for track embeddings.

Seed tracks (world build) and candidates (scoring) are described with the
same template so their embeddings live in a comparable space.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional


def _get(features: Any, name: str) -> float:
    if isinstance(features, Mapping):
        return float(features[name])
    return float(getattr(features, name))


def infer_style(features: Any) -> List[str]:
    """
    Map raw audio features to an ordered list of style tags.

    Rules are evaluated in a fixed order and each contributes at most one tag:
    mood (energy x valence), texture (acousticness), instrumentalness,
    tempo band, danceability.
    """
    energy = _get(features, "energy")
    valence = _get(features, "valence")
    acousticness = _get(features, "acousticness")
    tempo = _get(features, "tempo")

    tags: List[str] = []

    if energy > 0.7 and valence > 0.6:
        tags.append("upbeat")
    elif energy < 0.4 and valence < 0.4:
        tags.append("melancholic")
    elif energy > 0.6 and valence < 0.4:
        tags.append("intense")
    elif energy < 0.5 and valence > 0.5:
        tags.append("calm-warm")

    if acousticness > 0.7:
        tags.append("acoustic")
    elif acousticness < 0.3:
        tags.append("electronic")

    if _get(features, "instrumentalness") > 0.5:
        tags.append("instrumental")

    if tempo < 80:
        tags.append("slow")
    elif tempo > 140:
        tags.append("fast")
    else:
        tags.append("mid-tempo")

    if _get(features, "danceability") > 0.7:
        tags.append("groovy")

    return tags


def describe_track(
    *,
    artist: str,
    title: str,
    album: str,
    genres: Iterable[str],
    year: Optional[int],
    features: Any,
) -> str:
    """Render the one-line description embedded for a track."""
    return (
        f"{artist} - {title}. Album: {album}. "
        f"Genres: {', '.join(genres)}. Year: {year if year is not None else 'unknown'}. "
        f"Style: {', '.join(infer_style(features))}"
    )

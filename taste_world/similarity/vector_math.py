"""
Vector math for the taste model: normalization, centroids, distances and PCA.

All functions are pure. Inputs may be lists or numpy arrays; outputs are
numpy arrays (callers convert with .tolist() before persisting).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple, Union

import numpy as np
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from taste_world.errors import DimensionMismatch

ArrayLike = Union[Sequence[float], np.ndarray]

# Fixed order of the 9-d audio feature vector
FEATURE_ORDER: Tuple[str, ...] = (
    "danceability",
    "energy",
    "speechiness",
    "acousticness",
    "instrumentalness",
    "liveness",
    "valence",
    "tempo",
    "loudness",
)
# Soft normalizations: extreme inputs may still land outside [0, 1]
TEMPO_SCALE = 200.0
LOUDNESS_SCALE = -60.0


@dataclass(frozen=True)
class PCAResult:
    components: np.ndarray  # (k, d), orthonormal rows
    transformed: np.ndarray  # (n, k)
    explained_variance: np.ndarray  # (k,), descending


def normalize(values: ArrayLike) -> np.ndarray:
    """Min-max scale to [0, 1]; a zero range maps every value to 0.5."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr
    lo = float(arr.min())
    hi = float(arr.max())
    span = hi - lo
    if span == 0:
        return np.full_like(arr, 0.5)
    return (arr - lo) / span


def mean(values: ArrayLike) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("mean() of an empty sequence")
    return float(arr.mean())


def std(values: ArrayLike) -> float:
    """Population standard deviation."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("std() of an empty sequence")
    return float(arr.std(ddof=0))


def standardize(matrix: ArrayLike) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Per-column z-score.

    Returns (data, means, stds). A column with zero spread maps to all zeros.
    """
    X = np.asarray(matrix, dtype=float)
    if X.ndim != 2 or X.shape[0] == 0:
        raise ValueError(f"standardize() expects a non-empty 2-d matrix, got shape {X.shape}")
    scaler = StandardScaler()
    data = scaler.fit_transform(X)
    return data, scaler.mean_.copy(), np.sqrt(scaler.var_)


def principal_component_analysis(matrix: ArrayLike, k: int = 8) -> PCAResult:
    """
    PCA over the standardized matrix.

    Eigenpairs of the (n-1)-denominator covariance, sorted by eigenvalue
    descending and truncated to k. k is clamped to the number of original
    dimensions (and to the row count, which bounds the non-trivial rank).
    Explained variance is eigenvalue / sum of all eigenvalues.
    """
    X = np.asarray(matrix, dtype=float)
    if X.ndim != 2 or X.shape[0] < 2:
        raise ValueError("principal_component_analysis() needs at least two rows")
    if k < 1:
        raise ValueError("k must be at least 1")

    n, d = X.shape
    k = min(k, d, n)
    data, _, _ = standardize(X)

    pca = PCA(n_components=k, svd_solver="full")
    transformed = pca.fit_transform(data)
    explained = np.nan_to_num(pca.explained_variance_ratio_, nan=0.0)

    return PCAResult(
        components=pca.components_.copy(),
        transformed=transformed,
        explained_variance=explained,
    )


def centroid(vectors: ArrayLike) -> np.ndarray:
    """Element-wise mean. Empty input yields an empty vector."""
    if len(vectors) == 0:
        return np.array([], dtype=float)
    X = np.asarray(vectors, dtype=float)
    return X.mean(axis=0)


def _pair(a: ArrayLike, b: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise DimensionMismatch(va.size, vb.size)
    return va, vb


def euclidean_distance(a: ArrayLike, b: ArrayLike) -> float:
    va, vb = _pair(a, b)
    return float(np.linalg.norm(va - vb))


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    """Cosine similarity in [-1, 1]; exactly 0 when either vector has zero magnitude."""
    va, vb = _pair(a, b)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def _feature(features: Any, name: str) -> float:
    if isinstance(features, Mapping):
        return float(features[name])
    return float(getattr(features, name))


def audio_features_to_vector(features: Any) -> np.ndarray:
    """Map raw audio features (object or mapping) onto the fixed 9-d vector."""
    values = []
    for name in FEATURE_ORDER:
        value = _feature(features, name)
        if name == "tempo":
            value = value / TEMPO_SCALE
        elif name == "loudness":
            value = value / LOUDNESS_SCALE
        values.append(value)
    return np.array(values, dtype=float)


def vector_to_feature_map(vector: ArrayLike) -> Dict[str, float]:
    """Inverse of audio_features_to_vector: back to raw feature scale."""
    arr = np.asarray(vector, dtype=float)
    if arr.size != len(FEATURE_ORDER):
        raise DimensionMismatch(arr.size, len(FEATURE_ORDER))
    out = {}
    for name, value in zip(FEATURE_ORDER, arr):
        if name == "tempo":
            value = value * TEMPO_SCALE
        elif name == "loudness":
            value = value * LOUDNESS_SCALE
        out[name] = float(value)
    return out

from .vector_math import (
    FEATURE_ORDER,
    PCAResult,
    audio_features_to_vector,
    centroid,
    cosine_similarity,
    euclidean_distance,
    mean,
    normalize,
    principal_component_analysis,
    standardize,
    std,
    vector_to_feature_map,
)

__all__ = [
    "FEATURE_ORDER",
    "PCAResult",
    "audio_features_to_vector",
    "centroid",
    "cosine_similarity",
    "euclidean_distance",
    "mean",
    "normalize",
    "principal_component_analysis",
    "standardize",
    "std",
    "vector_to_feature_map",
]

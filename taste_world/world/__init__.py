from .bias_rules import BIAS_RULES, BiasRule, parse_intersection_bias
from .style import describe_track, infer_style
from .types import (
    AudioFeatures,
    CandidateTrack,
    EnrichedTrack,
    Intersection,
    OnboardingAnswers,
    Track,
    WorldDefinition,
)

__all__ = [
    "BIAS_RULES",
    "BiasRule",
    "parse_intersection_bias",
    "describe_track",
    "infer_style",
    "AudioFeatures",
    "CandidateTrack",
    "EnrichedTrack",
    "Intersection",
    "OnboardingAnswers",
    "Track",
    "WorldDefinition",
]

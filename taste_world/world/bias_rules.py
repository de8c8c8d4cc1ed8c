"""
Keyword rules that turn an intersection's free-text bias into feature deltas.

Rules are an ordered table of (substring, feature, delta). Every rule whose
substring occurs in the lower-cased text applies, in table order, so a later
rule overwrites an earlier one for the same feature.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional

logger = logging.getLogger(__name__)


class BiasRule(NamedTuple):
    keyword: str
    feature: str
    delta: float


BIAS_RULES: List[BiasRule] = [
    BiasRule("darker", "valence", -0.15),
    BiasRule("melanchol", "valence", -0.15),
    BiasRule("brighter", "valence", 0.15),
    BiasRule("uplifting", "valence", 0.15),
    BiasRule("slower", "energy", -0.15),
    BiasRule("slower", "tempo", -10.0),
    BiasRule("calm", "energy", -0.15),
    BiasRule("calm", "tempo", -10.0),
    BiasRule("energetic", "energy", 0.15),
    BiasRule("driving", "energy", 0.15),
    BiasRule("faster", "tempo", 10.0),
    BiasRule("organic", "acousticness", 0.15),
    BiasRule("acoustic", "acousticness", 0.15),
    BiasRule("electronic", "acousticness", -0.15),
]


def parse_intersection_bias(
    text: str,
    rules: Optional[Iterable[BiasRule]] = None,
) -> Dict[str, float]:
    """
    Return the sparse feature -> delta map for a bias description.

    >>> parse_intersection_bias("darker and slower")
    {'valence': -0.15, 'energy': -0.15, 'tempo': -10.0}
    """
    lowered = (text or "").lower()
    bias: Dict[str, float] = {}
    for rule in (BIAS_RULES if rules is None else rules):
        if rule.keyword in lowered:
            bias[rule.feature] = rule.delta
    if not bias and lowered:
        logger.debug(f"No bias keywords matched in {text!r}")
    return bias

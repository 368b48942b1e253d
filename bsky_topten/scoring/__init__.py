"""Engagement scoring and the admission window."""

from .engine import (
    DEFAULT_WEIGHTS,
    AdmissionWindow,
    ScoreWeights,
    WindowPosition,
    build_post_candidate,
    score,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "AdmissionWindow",
    "ScoreWeights",
    "WindowPosition",
    "build_post_candidate",
    "score",
]

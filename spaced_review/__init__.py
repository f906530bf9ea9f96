"""Per-learner, per-item SM-2 spaced-repetition scheduler."""

__version__ = "1.0.0"

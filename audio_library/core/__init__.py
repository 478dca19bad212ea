"""
Core domain layer for audio-library.

Text normalization and similarity scoring. Pure functions only, nothing in
this package touches the filesystem, the database or the network.
"""

from __future__ import annotations

from .similarity import composite_score, duration_term, edit_distance, similarity, year_term
from .text import (
    canonical_key,
    normalize_artist,
    normalize_match_text,
    normalize_text,
    normalize_title,
    repair_mojibake,
    split_artists,
)

__all__ = [
    "canonical_key",
    "composite_score",
    "duration_term",
    "edit_distance",
    "normalize_artist",
    "normalize_match_text",
    "normalize_text",
    "normalize_title",
    "repair_mojibake",
    "similarity",
    "split_artists",
    "year_term",
]

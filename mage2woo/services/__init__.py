"""Service layer for the migration engine."""

from .normalizers import NORMALIZERS, NormalizationContext, merge_media, map_order_status
from .preflight import run_preflight
from .text import slugify, username_candidates

__all__ = [
    "NORMALIZERS",
    "NormalizationContext",
    "merge_media",
    "map_order_status",
    "run_preflight",
    "slugify",
    "username_candidates",
]

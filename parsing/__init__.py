"""Parsing stage: normalization, validation, and page structure analysis."""

from parsing.change_detector import ChangeDetector
from parsing.normalizers import TaxonomyNormalizer
from parsing.structure import structural_fingerprint
from parsing.validator import SchemaValidator

__all__ = [
    "ChangeDetector",
    "SchemaValidator",
    "TaxonomyNormalizer",
    "structural_fingerprint",
]

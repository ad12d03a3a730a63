"""
Compound normalization package.

Detects which upstream JSON shape a compound record uses and maps it into
the canonical Compound record.
"""

from .detector import detect_format
from .compound_normalizer import derive_chemical_class, normalize_compound

__all__ = [
    'detect_format',
    'derive_chemical_class',
    'normalize_compound',
]

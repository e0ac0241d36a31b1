"""Target-size compression: format encoders, strategy selection and search."""

from .result import (
    UNREACHABLE_MARKER,
    CompressionAnalytics,
    CompressionResult,
    EncoderOptions,
)
from .encoders import (
    BaseEncoder,
    decode_image,
    get_available_formats,
    get_encoder,
)
from .strategy import SearchPath, describe_plan, select_search_path
from .engine import CompressionEngine, SearchOutcome, suggest_dimensions
from .advice import build_recommendations

__all__ = [
    'UNREACHABLE_MARKER',
    'CompressionAnalytics',
    'CompressionResult',
    'EncoderOptions',
    'BaseEncoder',
    'decode_image',
    'get_available_formats',
    'get_encoder',
    'SearchPath',
    'describe_plan',
    'select_search_path',
    'CompressionEngine',
    'SearchOutcome',
    'suggest_dimensions',
    'build_recommendations',
]

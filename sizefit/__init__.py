"""Compress images to fit a target file size"""

__version__ = '0.1.0'

from .errors import (
    CompressionCancelled,
    CompressionError,
    CorruptInput,
    DecodeError,
    EncodeFailure,
    InvalidDimensions,
    TargetTooSmall,
    UnsupportedFormat,
    ValidationError,
)
from .request import (
    CompressionRequest,
    CompressionStrategy,
    OutputFormat,
    ResamplingAlgorithm,
    validate_request,
)
from .settings import EngineSettings, SearchLimits, load_settings, save_settings
from .compression import CompressionAnalytics, CompressionResult
from .processor import CompressionOrchestrator, JobOutcome, JobState, compress_image
from .batch import BatchCoordinator, BatchResult, ImageJob, process_batch
from .response import build_response, save_response_json

__all__ = [
    '__version__',
    'CompressionCancelled',
    'CompressionError',
    'CorruptInput',
    'DecodeError',
    'EncodeFailure',
    'InvalidDimensions',
    'TargetTooSmall',
    'UnsupportedFormat',
    'ValidationError',
    'CompressionRequest',
    'CompressionStrategy',
    'OutputFormat',
    'ResamplingAlgorithm',
    'validate_request',
    'EngineSettings',
    'SearchLimits',
    'load_settings',
    'save_settings',
    'CompressionAnalytics',
    'CompressionResult',
    'CompressionOrchestrator',
    'JobOutcome',
    'JobState',
    'compress_image',
    'BatchCoordinator',
    'BatchResult',
    'ImageJob',
    'process_batch',
    'build_response',
    'save_response_json',
]

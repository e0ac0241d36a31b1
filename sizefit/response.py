"""Serialize batch results into the JSON response shape."""

import base64
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from .batch import BatchResult
from .processor import JobOutcome
from .request import BYTES_PER_MB


logger = logging.getLogger(__name__)


def _mb(size_bytes: int) -> float:
    return round(size_bytes / BYTES_PER_MB, 3)


def image_info(outcome: JobOutcome) -> Dict[str, Any]:
    """Describe one batch slot.

    Failed slots keep the filename and original size and carry an ``error``
    object instead of output fields.
    """
    if not outcome.ok:
        error = outcome.error
        return {
            'filename': outcome.filename,
            'original_size_mb': _mb(outcome.original_size_bytes),
            'processed_size_mb': 0.0,
            'width': 0,
            'height': 0,
            'format': None,
            'compression_ratio': 0.0,
            'recommendations': [],
            'error': error.to_dict() if error is not None else {'code': 'unknown', 'message': ''},
        }

    result = outcome.result
    info = {
        'filename': outcome.filename,
        'original_size_mb': _mb(result.original_size_bytes),
        'processed_size_mb': _mb(result.achieved_size_bytes),
        'width': result.width,
        'height': result.height,
        'format': result.format_used,
        'compression_ratio': round(result.compression_ratio, 2),
        'analytics': result.analytics.to_dict(),
        'recommendations': list(result.recommendations),
    }
    if result.metadata is not None:
        info['metadata'] = result.metadata.to_dict()
    return info


def build_response(batch: BatchResult, include_files: bool = True) -> Dict[str, Any]:
    """Build the response dictionary for a finished batch.

    Args:
        batch: Finished batch
        include_files: Include base64 ``processed_files``; a failed slot is
            an empty string so indexes stay aligned with ``images``

    Returns:
        JSON-serializable dictionary
    """
    analytics = batch.analytics
    response: Dict[str, Any] = {
        'success': batch.success,
        'message': batch.message,
        'images': [image_info(outcome) for outcome in batch.outcomes],
        'processing_time_ms': batch.processing_time_ms,
        'batch_analytics': {
            'total_original_size_mb': _mb(analytics.total_original_size_bytes),
            'total_processed_size_mb': _mb(analytics.total_processed_size_bytes),
            'average_compression_ratio': round(analytics.average_compression_ratio, 2),
            'total_iterations': analytics.total_iterations,
            'strategies_used': dict(analytics.strategies_used),
        },
    }
    if include_files:
        response['processed_files'] = [
            base64.b64encode(outcome.result.encoded_bytes).decode('ascii') if outcome.ok else ""
            for outcome in batch.outcomes
        ]
    return response


def save_response_json(response: Dict[str, Any], path: Union[str, Path]) -> bool:
    """
    Write a response dictionary to a JSON file.

    Returns:
        True if saved successfully
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(response, f, indent=2)
        logger.info(f"Report written to {path}")
        return True
    except IOError as e:
        logger.warning(f"Could not write report to {path}: {e}")
        return False

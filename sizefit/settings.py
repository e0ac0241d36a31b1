"""Engine configuration and JSON persistence.

Settings are plain dataclasses validated on construction. They are passed
explicitly to every batch and engine; nothing here is global.
"""

import json
import logging
from dataclasses import MISSING, asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union


logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "sizefit_settings.json"


@dataclass(frozen=True)
class SearchLimits:
    """Bounds for the quality/scale search.

    Attributes:
        min_quality: Quality floor for lossy bisection
        max_quality: Quality ceiling for lossy bisection
        max_iterations: Trial encodes allowed per image
        scale_decay: Factor applied to the scale on each fallback step
        max_scale_steps: Fallback steps allowed inside the iteration budget
        min_dimension: Smallest side (px) a downscaled trial may have
        metadata_in_probes: Embed metadata in every trial encode instead of
            adding its measured size as a constant offset
    """
    min_quality: int = 10
    max_quality: int = 95
    max_iterations: int = 8
    scale_decay: float = 0.85
    max_scale_steps: int = 4
    min_dimension: int = 16
    metadata_in_probes: bool = False

    def __post_init__(self):
        if not 1 <= self.min_quality <= self.max_quality <= 100:
            raise ValueError(
                f"quality bounds must satisfy 1 <= min <= max <= 100, "
                f"got {self.min_quality}-{self.max_quality}"
            )
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not 0.0 < self.scale_decay < 1.0:
            raise ValueError(f"scale_decay must be in (0, 1), got {self.scale_decay}")
        if self.max_scale_steps < 0:
            raise ValueError(f"max_scale_steps must be >= 0, got {self.max_scale_steps}")
        if self.min_dimension < 1:
            raise ValueError(f"min_dimension must be >= 1, got {self.min_dimension}")


@dataclass(frozen=True)
class EngineSettings:
    """Runtime configuration for batches and encoders.

    Attributes:
        limits: Search bounds
        max_workers: Worker threads per batch (None = CPU count)
        max_batch_size: Largest accepted batch
        min_target_mb: Smallest accepted target size
        max_target_mb: Largest accepted target size
        webp_method: WebP encoder effort (0-6)
        jpeg_subsampling: JPEG chroma mode for lossy trials (0=4:4:4, 1=4:2:2, 2=4:2:0)
        png_compress_level: zlib level for PNG (0-9)
    """
    limits: SearchLimits = field(default_factory=SearchLimits)
    max_workers: Optional[int] = None
    max_batch_size: int = 10
    min_target_mb: float = 0.1
    max_target_mb: float = 50.0
    webp_method: int = 4
    jpeg_subsampling: int = 2
    png_compress_level: int = 9

    def __post_init__(self):
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {self.max_batch_size}")
        if not 0 < self.min_target_mb <= self.max_target_mb:
            raise ValueError(
                f"target range must satisfy 0 < min <= max, "
                f"got {self.min_target_mb}-{self.max_target_mb}"
            )
        if not 0 <= self.webp_method <= 6:
            raise ValueError(f"webp_method must be 0-6, got {self.webp_method}")
        if self.jpeg_subsampling not in (0, 1, 2):
            raise ValueError(f"jpeg_subsampling must be 0, 1, or 2, got {self.jpeg_subsampling}")
        if not 0 <= self.png_compress_level <= 9:
            raise ValueError(f"png_compress_level must be 0-9, got {self.png_compress_level}")


def _known_values(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys the dataclass does not define, logging each one."""
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    for key in unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} key: {key}")
    return {k: v for k, v in data.items() if k in names}


def _check_types(cls, values: Dict[str, Any]) -> None:
    """Raise ValueError when a value's JSON type does not match the field default."""
    for f in fields(cls):
        if f.name not in values or f.default is MISSING:
            continue
        value = values[f.name]
        if value is None and f.default is None:
            continue
        if isinstance(f.default, bool):
            expected, ok = "a boolean", isinstance(value, bool)
        elif isinstance(f.default, float):
            expected = "a number"
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        else:
            expected = "an integer"
            ok = isinstance(value, int) and not isinstance(value, bool)
        if not ok:
            raise ValueError(f"{cls.__name__}.{f.name} must be {expected}, got {value!r}")


def settings_from_dict(data: Dict[str, Any]) -> EngineSettings:
    """Build settings from a (possibly partial) dictionary.

    Raises:
        ValueError: If a value is out of range or of the wrong type
    """
    values = _known_values(EngineSettings, data)
    _check_types(EngineSettings, values)
    limits = values.pop('limits', None)
    if isinstance(limits, dict):
        limit_values = _known_values(SearchLimits, limits)
        _check_types(SearchLimits, limit_values)
        values['limits'] = SearchLimits(**limit_values)
    elif limits is not None:
        raise ValueError(f"limits must be an object, got {limits!r}")
    return EngineSettings(**values)


def settings_to_dict(settings: EngineSettings) -> Dict[str, Any]:
    return asdict(settings)


def default_settings_path() -> Path:
    """sizefit_settings.json in the current working directory."""
    return Path.cwd() / SETTINGS_FILENAME


def load_settings(path: Union[str, Path, None] = None) -> EngineSettings:
    """
    Load settings from a JSON file.

    Missing or unreadable files yield the defaults.

    Args:
        path: Settings file (defaults to sizefit_settings.json in cwd)

    Returns:
        EngineSettings instance
    """
    path = Path(path) if path is not None else default_settings_path()
    if not path.exists():
        return EngineSettings()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Could not read settings from {path}: {e}; using defaults")
        return EngineSettings()
    if not isinstance(data, dict):
        logger.warning(f"Settings file {path} does not hold an object; using defaults")
        return EngineSettings()
    return settings_from_dict(data)


def save_settings(settings: EngineSettings, path: Union[str, Path, None] = None) -> bool:
    """
    Save settings to a JSON file.

    Returns:
        True if saved successfully
    """
    path = Path(path) if path is not None else default_settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(settings_to_dict(settings), f, indent=2)
        return True
    except IOError as e:
        logger.warning(f"Could not write settings to {path}: {e}")
        return False

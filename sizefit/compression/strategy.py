"""Compression strategy selection.

Maps the requested strategy and output format onto one of a fixed set of
search paths run by the engine:

- LOSSY: quality bisection, then scale fallback
- LOSSLESS: strongest lossless pass, then lossless scale fallback
- HYBRID: one lossless attempt, then the lossy path if it misses the target
"""

from enum import Enum

from ..request import CompressionStrategy, OutputFormat


class SearchPath(str, Enum):
    LOSSY = "lossy"
    LOSSLESS = "lossless"
    HYBRID = "hybrid"


# Output formats whose encoder has no quality axis
_NO_QUALITY_AXIS = {OutputFormat.PNG}

# (strategy, has quality axis) -> path
_PLAN = {
    (CompressionStrategy.AUTO, True): SearchPath.LOSSY,
    (CompressionStrategy.AUTO, False): SearchPath.HYBRID,
    (CompressionStrategy.LOSSY, True): SearchPath.LOSSY,
    (CompressionStrategy.LOSSY, False): SearchPath.LOSSLESS,
    (CompressionStrategy.LOSSLESS, True): SearchPath.LOSSLESS,
    (CompressionStrategy.LOSSLESS, False): SearchPath.LOSSLESS,
    (CompressionStrategy.HYBRID, True): SearchPath.HYBRID,
    (CompressionStrategy.HYBRID, False): SearchPath.HYBRID,
}


def select_search_path(strategy, output_format) -> SearchPath:
    """Choose the search path for a strategy and output format.

    Args:
        strategy: CompressionStrategy (or its name)
        output_format: OutputFormat (or its name)

    Returns:
        SearchPath the engine should run
    """
    strategy = CompressionStrategy.parse(strategy)
    output_format = OutputFormat.parse(output_format)
    return _PLAN[(strategy, output_format not in _NO_QUALITY_AXIS)]


def describe_plan(strategy, output_format) -> str:
    """Human-readable note on how the strategy was resolved."""
    strategy = CompressionStrategy.parse(strategy)
    output_format = OutputFormat.parse(output_format)
    path = select_search_path(strategy, output_format)

    if strategy is CompressionStrategy.AUTO:
        if path is SearchPath.HYBRID:
            return f"auto strategy: lossless first for {output_format.value}, lossy fallback if needed"
        return f"auto strategy: quality bisection for {output_format.value}"
    if strategy is CompressionStrategy.LOSSY and path is SearchPath.LOSSLESS:
        return f"{output_format.value} has no quality setting; lossy strategy reduces dimensions instead"
    return f"{strategy.value} strategy"

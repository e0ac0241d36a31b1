"""Exception types raised by the compression pipeline.

Request-level problems (``ValidationError``) abort a batch before any job
starts. Everything else fails a single image and is recorded in that
image's slot of the batch result.
"""


class CompressionError(Exception):
    """Base class for all pipeline errors."""

    code = "compression_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'code': self.code, 'message': self.message}


class ValidationError(CompressionError, ValueError):
    """Request shape is invalid (target size, quality, batch size)."""

    code = "validation_error"


class DecodeError(CompressionError):
    """Input bytes could not be decoded into pixels."""

    code = "decode_error"


class CorruptInput(DecodeError):
    """Input is truncated, damaged, or not an image at all."""

    code = "corrupt_input"


class UnsupportedFormat(DecodeError):
    """Image format outside the supported set."""

    code = "unsupported_format"


class EncodeFailure(CompressionError):
    """Codec-level failure while encoding."""

    code = "encode_failure"


class InvalidDimensions(CompressionError, ValueError):
    """Resize target has a zero or negative side."""

    code = "invalid_dimensions"


class TargetTooSmall(CompressionError):
    """Target is below the smallest encoding the format can produce."""

    code = "target_too_small"

    def __init__(self, target_bytes: int, floor_bytes: int):
        super().__init__(
            f"Target of {target_bytes} bytes is below the minimum viable "
            f"encoded size of {floor_bytes} bytes"
        )
        self.target_bytes = target_bytes
        self.floor_bytes = floor_bytes


class CompressionCancelled(CompressionError):
    """Batch was aborted before this job finished."""

    code = "cancelled"

"""Typed failures for conversion requests.

Resolver and builder failures (`UnsupportedFormat`, `UnsupportedCodec`,
`NoAudioStream`) are raised before any process is spawned. Supervisor failures
(`SpawnFailed`, `EncodingFailed`, `ConversionTimeout`) are raised after the
matching `conversion-error` event has been published. Cancellation is not an
error and has no class here.
"""

from typing import Optional, Sequence


class CatalogError(Exception):
    """Raised when a format table cannot be loaded."""


class ConversionError(Exception):
    code = "unknown"

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.task_id = task_id

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class UnsupportedFormat(ConversionError):
    code = "unsupported_format"

    def __init__(self, extension: str, task_id: Optional[str] = None):
        super().__init__(f"Unsupported format: {extension}", task_id)
        self.extension = extension


class UnsupportedCodec(ConversionError):
    code = "unsupported_codec"

    def __init__(self, codec: str, extension: str, supported: Sequence[str] = (), task_id: Optional[str] = None):
        super().__init__(
            f"Codec '{codec}' is not compatible with {extension} format. Supported: {list(supported)}",
            task_id,
        )
        self.codec = codec
        self.extension = extension


class NoAudioStream(ConversionError):
    code = "no_audio_stream"

    def __init__(self, input_path: str, task_id: Optional[str] = None):
        super().__init__(f"No audio streams found in {input_path}", task_id)


class SpawnFailed(ConversionError):
    code = "spawn_failed"


class EncodingFailed(ConversionError):
    code = "encoding_failed"

    def __init__(self, exit_code: int, task_id: Optional[str] = None):
        super().__init__(f"ffmpeg exited with code {exit_code}", task_id)
        self.exit_code = exit_code


class ConversionTimeout(ConversionError):
    code = "timeout"

    def __init__(self, limit_s: float, task_id: Optional[str] = None):
        super().__init__(f"Conversion timed out (limit: {limit_s:g}s)", task_id)
        self.limit_s = limit_s

from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from mcv.domain.models import FileMetadata

PROGRESS_ARGS = ("-progress", "pipe:1")
GLOBAL_ARGS = ("-y", "-hide_banner", "-nostdin")


class CommandBuilder:
    """Ordered ffmpeg argument assembly.

    Arguments land in fixed slots no matter the call order:

        global flags, input options, -i INPUT, stream options,
        -vf FILTERS, output options, -progress pipe:1, OUTPUT

    Every setter returns the builder so calls chain. `build()` does not
    mutate the builder; calling it twice yields equal vectors.
    """

    def __init__(self, input_path: Union[str, Path], output_path: Union[str, Path]):
        self.input_path = str(input_path)
        self.output_path = str(output_path)
        self._input_options: List[str] = []
        self._stream_options: List[str] = []
        self._filters: List[str] = []
        self._output_options: List[str] = []

    # Input side

    def hwaccel(self, args: Iterable[str]) -> "CommandBuilder":
        self._input_options.extend(args)
        return self

    # Per-stream options

    def arg(self, key: str, value: Union[str, int]) -> "CommandBuilder":
        self._stream_options.extend([key, str(value)])
        return self

    def flag(self, flag: str) -> "CommandBuilder":
        self._stream_options.append(flag)
        return self

    def args(self, args: Iterable[str]) -> "CommandBuilder":
        self._stream_options.extend(str(a) for a in args)
        return self

    def disable_video(self) -> "CommandBuilder":
        return self.flag("-vn")

    def disable_audio(self) -> "CommandBuilder":
        return self.flag("-an")

    def video_codec(self, codec: str) -> "CommandBuilder":
        return self.arg("-c:v", codec)

    def audio_codec(self, codec: str) -> "CommandBuilder":
        return self.arg("-c:a", codec)

    def audio_bitrate(self, kbps: int) -> "CommandBuilder":
        return self.arg("-b:a", f"{kbps}k")

    def sample_rate(self, rate: int) -> "CommandBuilder":
        return self.arg("-ar", rate)

    def channels(self, count: int) -> "CommandBuilder":
        return self.arg("-ac", count)

    def frame_rate(self, rate: Union[str, int]) -> "CommandBuilder":
        return self.arg("-r", rate)

    # Filters, collapsed into one -vf

    def filter(self, expression: str) -> "CommandBuilder":
        self._filters.append(expression)
        return self

    def scale(self, width: Optional[int], height: Optional[int], force_even: bool = True) -> "CommandBuilder":
        if width is None or height is None:
            return self
        if force_even:
            width, height = width & ~1, height & ~1
        return self.filter(f"scale={width}:{height}")

    # Output side

    def output_option(self, *args: str) -> "CommandBuilder":
        self._output_options.extend(args)
        return self

    def output_options(self, args: Iterable[str]) -> "CommandBuilder":
        self._output_options.extend(str(a) for a in args)
        return self

    def container(self, name: Optional[str]) -> "CommandBuilder":
        if name:
            self._output_options.extend(["-f", name])
        return self

    def metadata(self, copy_source: bool, fields: Optional[FileMetadata] = None) -> "CommandBuilder":
        self._output_options.extend(["-map_metadata", "0" if copy_source else "-1"])
        if fields is not None:
            for key, value in fields.items():
                self._output_options.extend(["-metadata", f"{key}={value}"])
        return self

    def build(self) -> Tuple[List[str], str]:
        """Returns (argv without the executable, output path)."""
        argv: List[str] = list(GLOBAL_ARGS)
        argv.extend(self._input_options)
        argv.extend(["-i", self.input_path])
        argv.extend(self._stream_options)
        if self._filters:
            argv.extend(["-vf", ",".join(self._filters)])
        argv.extend(self._output_options)
        argv.extend(PROGRESS_ARGS)
        argv.append(self.output_path)
        return argv, self.output_path

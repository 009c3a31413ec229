"""Conversion commands exposed to the CLI and any other front end.

`ConversionService` is the single entry point: it probes the input, asks the
resolver for a plan, turns the plan into an argument vector and hands that
to the supervisor. Unsupported requests fail before anything is spawned.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from mcv.config.models import AppConfig
from mcv.domain.errors import UnsupportedFormat
from mcv.domain.models import ConversionResult, ConversionSettings, HardwareProfile, MediaProbeResult
from mcv.formats.capabilities import AudioFormat, VideoFormat
from mcv.formats.catalog import FormatCatalog
from mcv.infrastructure.ffprobe import FFprobeAdapter
from mcv.infrastructure.supervisor import ProcessSupervisor
from mcv.pipeline.commands import build_audio_command, build_extraction_command, build_video_command
from mcv.pipeline.resolver import CodecResolver

PathLike = Union[str, Path]


class ConversionService:
    """Runs audio conversions, video conversions and audio extractions.

    Args:
        config: AppConfig; only `general.copy_metadata` is read per request.
        catalog: FormatCatalog built at startup.
        hardware: HardwareProfile detected at startup.
        prober: FFprobeAdapter used to describe each input.
        supervisor: ProcessSupervisor that owns the task registry.
    """

    def __init__(
        self,
        config: AppConfig,
        catalog: FormatCatalog,
        hardware: HardwareProfile,
        prober: FFprobeAdapter,
        supervisor: ProcessSupervisor,
    ):
        self.config = config
        self.catalog = catalog
        self.hardware = hardware
        self.prober = prober
        self.supervisor = supervisor
        self.resolver = CodecResolver(catalog, hardware)
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _with_task_id(task_id: str, settings: Optional[ConversionSettings]) -> ConversionSettings:
        settings = settings or ConversionSettings()
        if settings.task_id == task_id:
            return settings
        return settings.model_copy(update={"task_id": task_id})

    @staticmethod
    def _prepare_output(output_path: PathLike) -> str:
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        return str(output)

    def _run(self, task_id: str, args: List[str], output: str, probe: MediaProbeResult) -> ConversionResult:
        return self.supervisor.spawn(task_id, args, probe.duration, output_path=output)

    def convert(
        self,
        task_id: str,
        input_path: PathLike,
        output_path: PathLike,
        target_format: str,
        settings: Optional[ConversionSettings] = None,
    ) -> ConversionResult:
        """Dispatches to the audio or video variant by the target's catalog entry."""
        record = self.catalog.lookup(target_format)
        if isinstance(record, AudioFormat):
            return self.convert_audio(task_id, input_path, output_path, target_format, settings)
        if isinstance(record, VideoFormat):
            return self.convert_video(task_id, input_path, output_path, target_format, settings)
        raise UnsupportedFormat(target_format, task_id=task_id)

    def convert_audio(
        self,
        task_id: str,
        input_path: PathLike,
        output_path: PathLike,
        target_format: str,
        settings: Optional[ConversionSettings] = None,
    ) -> ConversionResult:
        settings = self._with_task_id(task_id, settings)
        self.catalog.require_audio(target_format, task_id=task_id)
        probe = self.prober.probe(input_path)
        plan = self.resolver.resolve_audio(target_format, probe, settings)
        args, output = build_audio_command(
            plan, str(input_path), self._prepare_output(output_path),
            copy_metadata=self.config.general.copy_metadata, metadata=settings.metadata,
        )
        self.logger.info(f"CONVERT_AUDIO: task={task_id} {input_path} -> {output} ({plan.codec})")
        return self._run(task_id, args, output, probe)

    def convert_video(
        self,
        task_id: str,
        input_path: PathLike,
        output_path: PathLike,
        target_format: str,
        settings: Optional[ConversionSettings] = None,
    ) -> ConversionResult:
        settings = self._with_task_id(task_id, settings)
        self.catalog.require_video(target_format, task_id=task_id)
        probe = self.prober.probe(input_path)
        plan = self.resolver.resolve_video(target_format, probe, settings)
        args, output = build_video_command(
            plan, str(input_path), self._prepare_output(output_path),
            copy_metadata=self.config.general.copy_metadata, metadata=settings.metadata,
        )
        self.logger.info(f"CONVERT_VIDEO: task={task_id} {input_path} -> {output} ({plan.codec})")
        return self._run(task_id, args, output, probe)

    def extract_audio(
        self,
        task_id: str,
        input_path: PathLike,
        output_path: PathLike,
        target_format: str,
        settings: Optional[ConversionSettings] = None,
    ) -> ConversionResult:
        """Pulls the first audio stream of a video into an audio file.

        Raises NoAudioStream before spawning when the source has none.
        """
        settings = self._with_task_id(task_id, settings)
        self.catalog.require_audio(target_format, task_id=task_id)
        probe = self.prober.probe(input_path)
        plan = self.resolver.resolve_extraction(target_format, probe, settings, input_path=str(input_path))
        args, output = build_extraction_command(
            plan, str(input_path), self._prepare_output(output_path),
            copy_metadata=self.config.general.copy_metadata, metadata=settings.metadata,
        )
        self.logger.info(f"EXTRACT_AUDIO: task={task_id} {input_path} -> {output} ({plan.codec})")
        return self._run(task_id, args, output, probe)

    def cancel(self, task_id: str) -> bool:
        return self.supervisor.cancel(task_id)

    def cancel_all(self) -> int:
        return self.supervisor.cancel_all()

    def active_tasks(self) -> List[str]:
        return self.supervisor.active_tasks()

import logging
import shutil
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from mcv.config.loader import load_config
from mcv.config.models import AppConfig
from mcv.domain.errors import CatalogError, ConversionError
from mcv.domain.models import AudioAction, ConversionSettings, HardwareProfile, MediaKind, Quality
from mcv.formats.catalog import FormatCatalog, normalize_extension
from mcv.formats.compatibility import (
    Compatibility,
    classify_audio_formats,
    classify_video_formats,
    validate_conversion,
)
from mcv.infrastructure.event_bus import EventBus
from mcv.infrastructure.ffprobe import FFprobeAdapter
from mcv.infrastructure.hardware import HardwareDetector
from mcv.infrastructure.logging import setup_logging
from mcv.infrastructure.supervisor import ProcessSupervisor
from mcv.pipeline.service import ConversionService
from mcv.ui.dashboard import Dashboard
from mcv.ui.manager import UIManager
from mcv.ui.state import UIState

app = typer.Typer(help="MCV (Media Conversion) - ffmpeg conversion orchestrator")
console = Console()

DEFAULT_CONFIG_PATH = Path("conf/mcv.yaml")


@dataclass
class ConversionJob:
    task_id: str
    input_path: Path
    output_path: Path
    target: str


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _resolve_binary(name: str) -> str:
    return shutil.which(name) or name


def _load_app_config(
    config_path: Optional[Path],
    debug: bool = False,
    log_path: Optional[Path] = None,
    gpu: Optional[bool] = None,
    jobs: Optional[int] = None,
    quality: Optional[Quality] = None,
) -> AppConfig:
    """Loads the YAML config (when present), applies CLI overrides and sets up logging."""
    try:
        if config_path is not None and config_path.exists():
            config = load_config(config_path)
        elif config_path is not None and config_path != DEFAULT_CONFIG_PATH:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            config = AppConfig()
        if debug:
            config.general.debug = True
        if log_path is not None:
            config.general.log_path = str(log_path)
        if gpu is not None:
            config.general.use_gpu = gpu
        if jobs is not None:
            config.general.jobs = jobs
        if quality is not None:
            config.general.quality = quality
    except (FileNotFoundError, ValidationError, ValueError) as e:
        _fail(str(e))

    config.general.ffmpeg_path = _resolve_binary(config.general.ffmpeg_path)
    config.general.ffprobe_path = _resolve_binary(config.general.ffprobe_path)

    logger = setup_logging(Path(config.general.log_path), debug=config.general.debug)
    logger.info(
        f"Config: jobs={config.general.jobs}, gpu={config.general.use_gpu}, "
        f"quality={config.general.quality.value}, debug={config.general.debug}"
    )
    return config


def _load_catalog(config: AppConfig) -> FormatCatalog:
    audio_table = Path(config.formats.audio_table) if config.formats.audio_table else None
    video_table = Path(config.formats.video_table) if config.formats.video_table else None
    try:
        return FormatCatalog.from_files(audio_path=audio_table, video_path=video_table)
    except CatalogError as e:
        logging.getLogger(__name__).critical(f"Format catalog rejected: {e}")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _detect_hardware(config: AppConfig) -> HardwareProfile:
    if not config.general.use_gpu:
        return HardwareProfile.cpu_only()
    return HardwareDetector(ffmpeg_path=config.general.ffmpeg_path).detect()


def _build_service(config: AppConfig, catalog: FormatCatalog, hardware: HardwareProfile,
                   bus: EventBus) -> ConversionService:
    supervisor = ProcessSupervisor(bus, ffmpeg_path=config.general.ffmpeg_path, config=config.supervisor)
    prober = FFprobeAdapter(ffprobe_path=config.general.ffprobe_path)
    return ConversionService(config, catalog, hardware, prober, supervisor)


def _plan_jobs(inputs: List[Path], target: str, out_dir: Optional[Path]) -> List[ConversionJob]:
    jobs = []
    for input_path in inputs:
        directory = out_dir if out_dir is not None else input_path.parent
        output_path = directory / f"{input_path.stem}.{target}"
        jobs.append(ConversionJob(uuid.uuid4().hex[:8], input_path, output_path, target))
    return jobs


def _preflight(catalog: FormatCatalog, job: ConversionJob, settings: ConversionSettings) -> Optional[str]:
    """Returns a blocking problem for the job, or None when it may run."""
    logger = logging.getLogger(__name__)
    if not job.input_path.is_file():
        return f"Input file not found: {job.input_path}"
    if job.output_path.resolve() == job.input_path.resolve():
        return f"Output would overwrite input: {job.output_path}"

    record = catalog.lookup(job.target)
    if record is None:
        return f"Unsupported format: {job.target}"
    input_ext = normalize_extension(job.input_path.suffix)
    check = validate_conversion(catalog, input_ext, job.target, record.media_kind, settings)
    for warning in check.warnings:
        logger.warning(f"PREFLIGHT: task={job.task_id} {warning}")
    if not check.is_valid:
        return "; ".join(check.errors)
    return None


def _run_jobs(
    config: AppConfig,
    service: ConversionService,
    bus: EventBus,
    hardware: HardwareProfile,
    jobs: List[ConversionJob],
    runner: Callable[[ConversionJob], object],
) -> Tuple[int, List[Tuple[ConversionJob, str]]]:
    """Runs jobs on a thread pool behind the live dashboard.

    Returns the number of completed jobs and the failed ones with their messages.
    """
    logger = logging.getLogger(__name__)
    ui_state = UIState()
    ui_state.hardware_label = f"{hardware.vendor.value} ({hardware.name})" if hardware.available else hardware.name
    UIManager(bus, ui_state)
    for job in jobs:
        ui_state.add_task(job.task_id, job.input_path.name, job.target)

    completed = 0
    failures: List[Tuple[ConversionJob, str]] = []
    dashboard = Dashboard(ui_state, refresh_per_second=config.ui.refresh_per_second, show_eta=config.ui.show_eta)
    executor = ThreadPoolExecutor(max_workers=config.general.jobs, thread_name_prefix="mcv-task")
    try:
        with dashboard:
            futures = {executor.submit(runner, job): job for job in jobs}
            try:
                for future in as_completed(futures):
                    job = futures[future]
                    try:
                        result = future.result()
                        if result is not None and result.completed:
                            completed += 1
                    except (ConversionError, RuntimeError) as e:
                        logger.error(f"Task {job.task_id} failed: {e}")
                        ui_state.mark_failed(job.task_id, str(e))
                        failures.append((job, str(e)))
            except KeyboardInterrupt:
                ui_state.interrupt_requested = True
                cancelled = service.cancel_all()
                logger.info(f"Interrupted: cancelled {cancelled} running task(s)")
                executor.shutdown(wait=True, cancel_futures=True)
                raise
    finally:
        executor.shutdown(wait=True)
    return completed, failures


def _execute(
    config: AppConfig,
    inputs: List[Path],
    target: str,
    out_dir: Optional[Path],
    settings: ConversionSettings,
    extraction: bool,
):
    catalog = _load_catalog(config)
    target = normalize_extension(target)
    if target not in catalog:
        _fail(f"Unsupported output format: {target}")
    if extraction and catalog.audio(target) is None:
        _fail(f"'{target}' is not an audio format")

    hardware = _detect_hardware(config)
    bus = EventBus()
    service = _build_service(config, catalog, hardware, bus)

    jobs = _plan_jobs(inputs, target, out_dir)
    rejected: List[Tuple[ConversionJob, str]] = []
    runnable: List[ConversionJob] = []
    for job in jobs:
        problem = _preflight(catalog, job, settings)
        if problem is None:
            runnable.append(job)
        else:
            rejected.append((job, problem))

    operation = service.extract_audio if extraction else service.convert

    def runner(job: ConversionJob):
        return operation(job.task_id, job.input_path, job.output_path, job.target, settings)

    try:
        completed, failures = _run_jobs(config, service, bus, hardware, runnable, runner) if runnable else (0, [])
    except KeyboardInterrupt:
        typer.secho("\nConversion stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    for job, message in rejected + failures:
        typer.secho(f"✗ {job.input_path.name}: {message}", fg=typer.colors.RED, err=True)
    typer.echo(f"Done: {completed}/{len(jobs)} converted")
    if rejected or failures:
        raise typer.Exit(code=1)


def _settings(config: AppConfig, **overrides) -> ConversionSettings:
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ConversionSettings(quality=config.general.quality, use_gpu=config.general.use_gpu, **values)
    except ValidationError as e:
        _fail(str(e))


ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config")
DebugOption = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
LogPathOption = typer.Option(None, "--log-path", help="Path to log file (overrides config)")


@app.command()
def convert(
    inputs: List[Path] = typer.Argument(..., help="Input media files"),
    to: str = typer.Option(..., "--to", "-t", help="Target format extension (mp3, mp4, webm, ...)"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", "-o", help="Output directory (default: next to input)"),
    quality: Optional[Quality] = typer.Option(None, "--quality", "-q", case_sensitive=False, help="Quality tier"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", min=1, help="Bitrate in kbps"),
    video_codec: Optional[str] = typer.Option(None, "--video-codec", help="Video codec override"),
    audio_codec: Optional[str] = typer.Option(None, "--audio-codec", help="Audio codec override"),
    width: Optional[int] = typer.Option(None, "--width", min=1),
    height: Optional[int] = typer.Option(None, "--height", min=1),
    fps: Optional[int] = typer.Option(None, "--fps", min=1),
    sample_rate: Optional[int] = typer.Option(None, "--sample-rate", min=1),
    channels: Optional[int] = typer.Option(None, "--channels", min=1),
    no_audio: bool = typer.Option(False, "--no-audio", help="Drop audio from video outputs"),
    gpu: Optional[bool] = typer.Option(None, "--gpu/--cpu", help="Enable/disable GPU acceleration"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent conversions"),
    config_path: Optional[Path] = ConfigOption,
    debug: bool = DebugOption,
    log_path: Optional[Path] = LogPathOption,
):
    """Convert media files into another audio or video format."""
    config = _load_app_config(config_path, debug, log_path, gpu, jobs, quality)
    settings = _settings(
        config,
        bitrate=bitrate,
        video_codec=video_codec,
        audio_codec=audio_codec,
        width=width,
        height=height,
        fps=fps,
        sample_rate=sample_rate,
        channels=channels,
        audio_action=AudioAction.REMOVE if no_audio else None,
    )
    _execute(config, inputs, to, out_dir, settings, extraction=False)


@app.command("extract-audio")
def extract_audio(
    inputs: List[Path] = typer.Argument(..., help="Input video files"),
    to: str = typer.Option(..., "--to", "-t", help="Target audio format (mp3, flac, ...)"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", "-o", help="Output directory (default: next to input)"),
    quality: Optional[Quality] = typer.Option(None, "--quality", "-q", case_sensitive=False, help="Quality tier"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", min=1, help="Bitrate in kbps"),
    audio_codec: Optional[str] = typer.Option(None, "--audio-codec", help="Audio codec override"),
    sample_rate: Optional[int] = typer.Option(None, "--sample-rate", min=1),
    channels: Optional[int] = typer.Option(None, "--channels", min=1),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent extractions"),
    config_path: Optional[Path] = ConfigOption,
    debug: bool = DebugOption,
    log_path: Optional[Path] = LogPathOption,
):
    """Extract the first audio stream of video files."""
    config = _load_app_config(config_path, debug, log_path, None, jobs, quality)
    settings = _settings(
        config,
        bitrate=bitrate,
        audio_codec=audio_codec,
        sample_rate=sample_rate,
        channels=channels,
    )
    _execute(config, inputs, to, out_dir, settings, extraction=True)


@app.command()
def formats(
    kind: Optional[MediaKind] = typer.Option(None, "--kind", "-k", case_sensitive=False, help="audio or video"),
    config_path: Optional[Path] = ConfigOption,
):
    """List supported output formats, most popular first."""
    config = _load_app_config(config_path)
    catalog = _load_catalog(config)

    records = catalog.all()
    if kind in (MediaKind.AUDIO, MediaKind.VIDEO):
        records = tuple(r for r in records if r.media_kind == kind)

    table = Table(title="Supported formats")
    table.add_column("EXT", style="cyan")
    table.add_column("KIND")
    table.add_column("CATEGORY")
    table.add_column("STABILITY")
    table.add_column("CODECS")
    table.add_column("NAME")
    for record in records:
        if record.media_kind == MediaKind.AUDIO:
            codecs = record.codec
        else:
            codecs = ", ".join(record.video_codecs)
        table.add_row(
            record.extension, record.media_kind.value, record.category.value,
            record.stability.value, codecs, record.name,
        )
    console.print(table)


@app.command()
def recommend(
    input_path: Path = typer.Argument(..., help="Media file to inspect"),
    config_path: Optional[Path] = ConfigOption,
):
    """Group output formats by how well they suit the given input."""
    config = _load_app_config(config_path)
    catalog = _load_catalog(config)
    try:
        probe = FFprobeAdapter(ffprobe_path=config.general.ffprobe_path).probe(input_path)
    except (RuntimeError, OSError) as e:
        _fail(str(e))

    video = probe.primary_video
    audio = probe.primary_audio
    if video is not None:
        groups = classify_video_formats(
            catalog, video.codec, audio.codec if audio else "", video.width, video.height
        )
        typer.echo(f"{input_path.name}: video {video.codec} {video.width}x{video.height}"
                   + (f", audio {audio.codec}" if audio else ""))
    elif audio is not None:
        groups = classify_audio_formats(catalog, audio.codec)
        typer.echo(f"{input_path.name}: audio {audio.codec} {audio.sample_rate}Hz {audio.channels}ch")
    else:
        _fail(f"No audio or video streams in {input_path}")

    table = Table(title="Recommended formats")
    table.add_column("LEVEL", style="cyan")
    table.add_column("FORMATS")
    for level in Compatibility:
        if groups[level]:
            table.add_row(level.value, ", ".join(groups[level]))
    console.print(table)


@app.command()
def gpu(config_path: Optional[Path] = ConfigOption):
    """Show the detected hardware acceleration backend."""
    config = _load_app_config(config_path)
    profile = HardwareDetector(ffmpeg_path=config.general.ffmpeg_path).detect()
    if not profile.available:
        typer.echo("No GPU with encoding support detected, using CPU")
        return
    typer.echo(f"Vendor:  {profile.vendor.value}")
    typer.echo(f"Name:    {profile.name}")
    typer.echo(f"H.264:   {profile.encoder_h264}")
    typer.echo(f"H.265:   {profile.encoder_h265}")
    typer.echo(f"Decoder: {profile.decoder}")


if __name__ == "__main__":
    app()

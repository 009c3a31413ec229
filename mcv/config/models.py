from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from mcv.domain.models import Quality

class GeneralConfig(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    use_gpu: bool = True
    copy_metadata: bool = True
    quality: Quality = Quality.MEDIUM
    jobs: int = Field(default=1, gt=0, le=16)
    log_path: str = "/tmp/mcv/conversion.log"
    debug: bool = False

class SupervisorConfig(BaseModel):
    """Process supervision knobs. The wall-clock limit is fixed and not configurable."""
    progress_interval_ms: int = Field(default=200, ge=100, le=500)
    error_markers: List[str] = Field(default_factory=lambda: ["Error", "Invalid", "failed"])
    kill_grace_s: float = Field(default=5.0, gt=0)

    @field_validator("error_markers")
    @classmethod
    def validate_markers(cls, v: List[str]) -> List[str]:
        cleaned = [m for m in v if m and m.strip()]
        if not cleaned:
            raise ValueError("error_markers must contain at least one non-empty marker")
        return cleaned

class FormatsConfig(BaseModel):
    """Alternative catalog tables; None means the bundled ones."""
    audio_table: Optional[str] = None
    video_table: Optional[str] = None

class UiConfig(BaseModel):
    refresh_per_second: int = Field(default=4, ge=1, le=30)
    show_eta: bool = True

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    formats: FormatsConfig = Field(default_factory=FormatsConfig)
    ui: UiConfig = Field(default_factory=UiConfig)

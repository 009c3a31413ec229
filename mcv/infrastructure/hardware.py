import logging
import platform
import subprocess
from typing import List, Optional, Sequence

from mcv.domain.models import GpuVendor, HardwareProfile

DETECT_TIMEOUT_S = 10.0
ENCODER_CHECK_TIMEOUT_S = 5.0


class HardwareDetector:
    """Finds the acceleration backend ffmpeg can actually use.

    Probes vendors in order (NVIDIA, AMD, Intel, Apple) and confirms the
    vendor's H.264 encoder is compiled into ffmpeg before trusting it. The
    result is computed once per detector.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", system: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path
        self.system = system or platform.system()
        self.logger = logging.getLogger(__name__)
        self._profile: Optional[HardwareProfile] = None
        self._encoders: Optional[str] = None
        self._adapters: Optional[List[str]] = None

    def _run(self, cmd: Sequence[str], timeout: float = DETECT_TIMEOUT_S) -> Optional[subprocess.CompletedProcess]:
        try:
            return subprocess.run(list(cmd), capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.debug(f"Hardware probe '{cmd[0]}' unavailable: {e}")
            return None

    def has_encoder(self, encoder: str) -> bool:
        if self._encoders is None:
            result = self._run([self.ffmpeg_path, "-hide_banner", "-encoders"], ENCODER_CHECK_TIMEOUT_S)
            self._encoders = result.stdout if result is not None and result.returncode == 0 else ""
        return encoder in self._encoders

    def _display_adapters(self) -> List[str]:
        if self._adapters is None:
            self._adapters = self._list_adapters()
        return self._adapters

    def _list_adapters(self) -> List[str]:
        if self.system == "Windows":
            result = self._run(["wmic", "path", "win32_VideoController", "get", "name"])
            lines = result.stdout.splitlines() if result is not None else []
            return [line.strip() for line in lines[1:] if line.strip()]
        if self.system == "Darwin":
            result = self._run(["system_profiler", "SPDisplaysDataType"])
            lines = result.stdout.splitlines() if result is not None else []
            return [line.split(":", 1)[1].strip() for line in lines if "Chipset Model:" in line]
        result = self._run(["lspci"])
        lines = result.stdout.splitlines() if result is not None else []
        adapters = []
        for line in lines:
            lower = line.lower()
            if "vga" in lower or "3d controller" in lower or "display controller" in lower:
                parts = line.split(":", 2)
                adapters.append(parts[2].strip() if len(parts) == 3 else line.strip())
        return adapters

    def _adapter_name(self, keywords: Sequence[str]) -> Optional[str]:
        for name in self._display_adapters():
            lower = name.lower()
            if any(keyword in lower for keyword in keywords):
                return name
        return None

    def _detect_nvidia(self) -> Optional[HardwareProfile]:
        result = self._run(["nvidia-smi", "--query-gpu=name", "--format=csv,noheader"])
        if result is None or result.returncode != 0:
            return None
        name = result.stdout.strip().splitlines()[0].strip() if result.stdout.strip() else ""
        if not name:
            return None
        if not self.has_encoder("h264_nvenc"):
            self.logger.warning(f"NVIDIA GPU '{name}' found but h264_nvenc not available")
            return None
        return HardwareProfile.for_vendor(GpuVendor.NVIDIA, name)

    def _detect_amd(self) -> Optional[HardwareProfile]:
        name = self._adapter_name(["amd", "radeon"])
        if name is None:
            return None
        if not self.has_encoder("h264_amf"):
            self.logger.warning(f"AMD GPU '{name}' found but h264_amf not available")
            return None
        return HardwareProfile.for_vendor(GpuVendor.AMD, name)

    def _detect_intel(self) -> Optional[HardwareProfile]:
        name = self._adapter_name(["intel", "hd graphics", "uhd graphics", "iris"])
        if name is None:
            return None
        if not self.has_encoder("h264_qsv"):
            self.logger.warning(f"Intel GPU '{name}' found but h264_qsv not available")
            return None
        return HardwareProfile.for_vendor(GpuVendor.INTEL, name)

    def _detect_apple(self) -> Optional[HardwareProfile]:
        if self.system != "Darwin" or not self.has_encoder("h264_videotoolbox"):
            return None
        name = self._adapter_name(["apple"]) or "Apple GPU"
        return HardwareProfile.for_vendor(GpuVendor.APPLE, name)

    def detect(self) -> HardwareProfile:
        if self._profile is not None:
            return self._profile

        for probe in (self._detect_nvidia, self._detect_amd, self._detect_intel, self._detect_apple):
            profile = probe()
            if profile is not None:
                self.logger.info(f"GPU detected: {profile.vendor.value} ({profile.name})")
                self._profile = profile
                return profile

        self.logger.info("No GPU with encoding support detected, using CPU")
        self._profile = HardwareProfile.cpu_only()
        return self._profile

"""Microphone device backed by sounddevice, encoded with soundfile."""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np
import sounddevice as sd
import soundfile as sf

from .errors import CaptureUnavailable

logger = logging.getLogger(__name__)


@dataclass
class AudioCaptureConfig:
    """Configuration options for microphone capture."""

    sample_rate: int = 16_000
    channels: int = 1
    dtype: str = "float32"
    device: Optional[Union[int, str]] = None


# MIME type -> (soundfile container, subtype)
_SOUNDFILE_FORMATS = {
    "audio/ogg": ("OGG", "VORBIS"),
    "audio/wav": ("WAV", "PCM_16"),
}


class SoundDeviceMicrophone:
    """Default input device, buffered through a sounddevice callback stream."""

    def __init__(self, config: Optional[AudioCaptureConfig] = None) -> None:
        self.config = config or AudioCaptureConfig()

    def acquire(self) -> "SoundDeviceStream":
        try:
            sd.check_input_settings(
                device=self.config.device,
                channels=self.config.channels,
                dtype=self.config.dtype,
                samplerate=self.config.sample_rate,
            )
            return SoundDeviceStream(self.config)
        except (sd.PortAudioError, ValueError) as exc:
            raise CaptureUnavailable(f"Microphone unavailable: {exc}") from exc


class SoundDeviceStream:
    """Buffers raw frames and encodes them with soundfile on flush."""

    default_mime_type = "audio/wav"

    def __init__(self, config: AudioCaptureConfig) -> None:
        self.config = config
        self._buffer: List[np.ndarray] = []
        self._lock = threading.Lock()
        self._mime_type = self.default_mime_type
        self._stream = sd.InputStream(
            samplerate=config.sample_rate,
            channels=config.channels,
            dtype=config.dtype,
            device=config.device,
            callback=self._callback,
        )

    def supports(self, mime_type: str) -> bool:
        container = _SOUNDFILE_FORMATS.get(mime_type)
        return container is not None and sf.check_format(*container)

    def begin(self, mime_type: str) -> None:
        self._mime_type = mime_type if mime_type in _SOUNDFILE_FORMATS else self.default_mime_type
        try:
            self._stream.start()
        except sd.PortAudioError as exc:
            raise CaptureUnavailable(f"Microphone failed to start: {exc}") from exc

    def flush(self) -> List[bytes]:
        if self._stream.active:
            self._stream.stop()
        with self._lock:
            if not self._buffer:
                return []
            audio = np.concatenate(self._buffer, axis=0)
            self._buffer = []

        container, subtype = _SOUNDFILE_FORMATS[self._mime_type]
        encoded = io.BytesIO()
        sf.write(encoded, audio, samplerate=self.config.sample_rate, format=container, subtype=subtype)
        return [encoded.getvalue()]

    def release(self) -> None:
        self._stream.close()

    def _callback(self, indata: np.ndarray, frames: int, time, status) -> None:
        if status:
            logger.warning("Input stream status: %s", status)
        with self._lock:
            self._buffer.append(indata.copy())

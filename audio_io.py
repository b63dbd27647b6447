import logging
import time
from dataclasses import dataclass, field
from threading import Event, Thread
from typing import List, Optional

import numpy as np
import pyaudio

from alarms.sounds import OpenOutput, encode_wav

logger = logging.getLogger(__name__)


def create_pyaudio() -> pyaudio.PyAudio:
    pa = pyaudio.PyAudio()
    return pa


@dataclass
class InputDeviceInfo:
    index: int
    name: str
    rate: int
    channels: int


def get_input_device(pa: pyaudio.PyAudio, device_index: Optional[int]) -> InputDeviceInfo:
    if device_index is None:
        device_index = int(pa.get_default_input_device_info()["index"])
    info = pa.get_device_info_by_index(device_index)
    rate = int(info.get("defaultSampleRate", 16000))
    channels = int(info.get("maxInputChannels", 1)) or 1
    logger.info("Selected input device %s: %s (rate=%s, channels=%s)", device_index, info.get("name"), rate, channels)
    return InputDeviceInfo(index=device_index, name=info.get("name", "unknown"), rate=rate, channels=channels)


class FrameAdapter:
    """Converts arbitrary input chunks to mono int16 at the target rate."""

    def __init__(self, input_rate: int, input_channels: int, target_rate: int):
        self.input_rate = input_rate
        self.input_channels = input_channels
        self.target_rate = target_rate

    def _to_mono(self, data: np.ndarray) -> np.ndarray:
        if self.input_channels == 1:
            return data
        reshaped = data[: len(data) - len(data) % self.input_channels].reshape(-1, self.input_channels)
        mono = reshaped.mean(axis=1)
        return mono.astype(np.int16)

    def _resample(self, samples: np.ndarray) -> np.ndarray:
        if self.input_rate == self.target_rate or len(samples) == 0:
            return samples
        # Linear interpolation is enough for voice clips played back on a speaker.
        duration = len(samples) / self.input_rate
        target_len = int(duration * self.target_rate)
        target_idx = np.linspace(0, len(samples) - 1, target_len)
        resampled = np.interp(target_idx, np.arange(len(samples)), samples)
        return resampled.astype(np.int16)

    def process(self, chunk: bytes) -> bytes:
        samples = np.frombuffer(chunk, dtype=np.int16)
        return self._resample(self._to_mono(samples)).tobytes()


class AudioPlayer:
    def __init__(self, pa: pyaudio.PyAudio, rate: int, channels: int = 1, sample_width: int = 2):
        self.pa = pa
        self.rate = rate
        self.stream = self.pa.open(
            format=self.pa.get_format_from_width(sample_width),
            channels=channels,
            rate=self.rate,
            output=True,
        )

    def play_bytes(self, audio_bytes: bytes) -> None:
        self.stream.write(audio_bytes)

    def close(self) -> None:
        self.stream.stop_stream()
        self.stream.close()


def output_opener(pa: pyaudio.PyAudio) -> OpenOutput:
    def open_output(rate: int, channels: int, sample_width: int) -> AudioPlayer:
        return AudioPlayer(pa, rate, channels=channels, sample_width=sample_width)

    return open_output


@dataclass
class CaptureHandle:
    stream: "pyaudio.Stream"
    adapter: FrameAdapter
    started_at: float
    stop_event: Event = field(default_factory=Event)
    chunks: List[bytes] = field(default_factory=list)
    thread: Optional[Thread] = None


class MicrophoneRecorder:
    """Capture service recording the microphone into WAV clips."""

    def __init__(
        self,
        pa: pyaudio.PyAudio,
        device: InputDeviceInfo,
        target_rate: int = 16000,
        max_seconds: int = 60,
        frames_per_buffer: int = 1024,
    ):
        self.pa = pa
        self.device = device
        self.target_rate = target_rate
        self.max_seconds = max(1, max_seconds)
        self.frames_per_buffer = frames_per_buffer

    def start_capture(self) -> CaptureHandle:
        try:
            stream = self.pa.open(
                format=pyaudio.paInt16,
                channels=self.device.channels,
                rate=self.device.rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=self.device.index,
            )
        except OSError as exc:
            raise PermissionError(f"Cannot open input device {self.device.index}: {exc}") from exc
        handle = CaptureHandle(
            stream=stream,
            adapter=FrameAdapter(self.device.rate, self.device.channels, self.target_rate),
            started_at=time.time(),
        )
        handle.thread = Thread(target=self._capture_loop, args=(handle,), name="alarm-recorder", daemon=True)
        handle.thread.start()
        return handle

    def stop_capture(self, handle: CaptureHandle) -> bytes:
        handle.stop_event.set()
        if handle.thread:
            handle.thread.join(timeout=2)
        handle.stream.stop_stream()
        handle.stream.close()
        pcm = b"".join(handle.chunks)
        duration_ms = len(pcm) / 2 / self.target_rate * 1000
        logger.info("recording_summary duration_ms=%.0f bytes=%s", duration_ms, len(pcm))
        if not pcm:
            return b""
        return encode_wav(pcm, self.target_rate)

    def _capture_loop(self, handle: CaptureHandle) -> None:
        deadline = handle.started_at + self.max_seconds
        while not handle.stop_event.is_set():
            if time.time() >= deadline:
                logger.warning("Recording limit of %ss reached", self.max_seconds)
                break
            try:
                chunk = handle.stream.read(self.frames_per_buffer, exception_on_overflow=False)
            except OSError as exc:
                logger.error("Audio input error: %s", exc)
                break
            handle.chunks.append(handle.adapter.process(chunk))


def describe_devices(pa: pyaudio.PyAudio) -> List[str]:
    """One line per microphone/speaker, for picking INPUT_DEVICE_INDEX."""
    lines = []
    for i in range(pa.get_device_count()):
        info = pa.get_device_info_by_index(i)
        for direction, key in (("IN ", "maxInputChannels"), ("OUT", "maxOutputChannels")):
            if info.get(key, 0) > 0:
                lines.append(
                    f"[{direction}] Index {i}: {info['name']} | "
                    f"rate={int(info['defaultSampleRate'])} | channels={info[key]}"
                )
    return lines

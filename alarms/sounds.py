from __future__ import annotations

import io
import logging
import struct
import time
import wave
from dataclasses import dataclass
from threading import Event, Thread
from typing import Callable, Optional, Protocol

import numpy as np

from .storage import Alarm

logger = logging.getLogger(__name__)

TONE_RATE = 24000
TONE_HZ = 800.0
TONE_MS = 500
TONE_GAIN = 0.3
TONE_PERIOD_S = 1.0


class OutputSink(Protocol):
    def play_bytes(self, audio_bytes: bytes) -> None: ...

    def close(self) -> None: ...


# (rate, channels, sample_width) -> sink
OpenOutput = Callable[[int, int, int], OutputSink]


@dataclass
class PcmClip:
    frames: bytes
    rate: int
    channels: int = 1
    sample_width: int = 2

    @property
    def duration_seconds(self) -> float:
        frame_size = self.channels * self.sample_width
        if not frame_size or not self.rate:
            return 0.0
        return len(self.frames) / frame_size / self.rate


def encode_wav(pcm: bytes, rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def decode_wav(data: bytes) -> PcmClip:
    try:
        with wave.open(io.BytesIO(data), "rb") as wav:
            return PcmClip(
                frames=wav.readframes(wav.getnframes()),
                rate=wav.getframerate(),
                channels=wav.getnchannels(),
                sample_width=wav.getsampwidth(),
            )
    except (wave.Error, EOFError, struct.error) as exc:
        raise ValueError(f"Unsupported sound clip: {exc}") from exc


def synthesize_beep(
    rate: int = TONE_RATE,
    freq: float = TONE_HZ,
    duration_ms: int = TONE_MS,
    gain: float = TONE_GAIN,
) -> bytes:
    """Square-wave burst as mono int16 PCM."""
    t = np.arange(int(rate * duration_ms / 1000)) / rate
    square = np.sign(np.sin(2 * np.pi * freq * t))
    return (square * gain * 32767).astype(np.int16).tobytes()


class SoundHandle:
    """Playback running on its own thread until ``stop`` is called."""

    kind = "silent"

    def __init__(self) -> None:
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.active:
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._run_safe, name=f"alarm-sound-{self.kind}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout=2)
        if thread.is_alive():
            logger.warning("Sound thread %s did not stop in time", thread.name)
        self._thread = None

    def _run_safe(self) -> None:
        try:
            self._run()
        except Exception:
            logger.error("Alarm sound playback failed (%s)", self.kind, exc_info=True)

    def _run(self) -> None:
        raise NotImplementedError


class ClipSound(SoundHandle):
    kind = "clip"

    def __init__(self, clip: PcmClip, open_output: OpenOutput, loop: bool = True, chunk_frames: int = 2048):
        super().__init__()
        self.clip = clip
        self.open_output = open_output
        self.loop = loop
        self.chunk_bytes = max(1, chunk_frames) * clip.channels * clip.sample_width

    def _run(self) -> None:
        if not self.clip.frames:
            logger.warning("Sound clip is empty, nothing to play")
            return
        sink = self.open_output(self.clip.rate, self.clip.channels, self.clip.sample_width)
        try:
            while not self._stop_event.is_set():
                for offset in range(0, len(self.clip.frames), self.chunk_bytes):
                    if self._stop_event.is_set():
                        return
                    sink.play_bytes(self.clip.frames[offset : offset + self.chunk_bytes])
                if not self.loop:
                    return
        finally:
            sink.close()


class FallbackTone(SoundHandle):
    kind = "tone"

    def __init__(
        self,
        open_output: OpenOutput,
        rate: int = TONE_RATE,
        freq: float = TONE_HZ,
        duration_ms: int = TONE_MS,
        gain: float = TONE_GAIN,
        period: float = TONE_PERIOD_S,
    ):
        super().__init__()
        self.open_output = open_output
        self.rate = rate
        self.period = period
        self.burst = synthesize_beep(rate, freq, duration_ms, gain)

    def _run(self) -> None:
        sink = self.open_output(self.rate, 1, 2)
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                sink.play_bytes(self.burst)
                logger.debug("Alarm ringing...")
                self._stop_event.wait(max(0.0, self.period - (time.monotonic() - started)))
        finally:
            sink.close()


class SoundResolver:
    def __init__(
        self,
        open_output: OpenOutput,
        tone_rate: int = TONE_RATE,
        tone_hz: float = TONE_HZ,
        tone_ms: int = TONE_MS,
        tone_gain: float = TONE_GAIN,
    ):
        self.open_output = open_output
        self.tone_rate = tone_rate
        self.tone_hz = tone_hz
        self.tone_ms = tone_ms
        self.tone_gain = tone_gain

    def resolve(self, alarm: Alarm) -> SoundHandle:
        if alarm.sound_clip:
            try:
                return ClipSound(self._playable(alarm.sound_clip), self.open_output, loop=True)
            except ValueError as exc:
                logger.warning("Alarm %s clip unusable (%s), using fallback tone", alarm.id, exc)
        return self.fallback()

    def fallback(self) -> FallbackTone:
        return FallbackTone(
            self.open_output,
            rate=self.tone_rate,
            freq=self.tone_hz,
            duration_ms=self.tone_ms,
            gain=self.tone_gain,
        )

    def preview(self, clip: bytes) -> Optional[SoundHandle]:
        try:
            handle = ClipSound(self._playable(clip), self.open_output, loop=False)
        except ValueError as exc:
            logger.warning("Cannot preview clip: %s", exc)
            return None
        handle.start()
        return handle

    @staticmethod
    def _playable(data: bytes) -> PcmClip:
        clip = decode_wav(data)
        if not clip.frames:
            raise ValueError("clip has no audio frames")
        return clip

"""Microphone capture device.

One sounddevice input stream runs for the whole session; ``cut()`` slices
whatever has been captured since the previous cut into a WAV-encoded
``AudioChunk``, so consecutive chunks have no gap between them.
"""

from __future__ import annotations

import io
import threading
import wave
from typing import Any, Optional

from loguru import logger

from errors import CaptureError, MicrophonePermissionError
from models import AudioChunk

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

PERMISSION_MARKERS = ("permission", "not permitted", "access denied", "not authorized", "unauthorized")


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def _capture_error(exc: Exception) -> CaptureError:
    message = str(exc)
    low = message.lower()
    if any(marker in low for marker in PERMISSION_MARKERS):
        return MicrophonePermissionError(message)
    return CaptureError(message)


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        block_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_ms = block_ms
        self._stream: Any = None
        self._finished = False
        self._running = False
        self._lock = threading.Lock()
        self._pcm = bytearray()

    @property
    def running(self) -> bool:
        return self._running

    def open(self) -> None:
        """Acquire the microphone and start capturing.

        Raises:
            MicrophonePermissionError: the OS refused microphone access.
            CaptureError: any other failure to open the device.
        """
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise CaptureError("sounddevice is not installed")
            blocksize = int(self.sample_rate * (self.block_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                    finished_callback=self._on_finished,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                error = _capture_error(exc)
                logger.error(f"Microphone unavailable ({error.code}): {exc}")
                raise error from exc
            self._pcm = bytearray()
            self._finished = False
            self._running = True
            logger.info(f"Microphone open: {self.sample_rate} Hz, {self.channels} channel(s)")

    def cut(self) -> Optional[AudioChunk]:
        """Finish the current capture unit and start the next one.

        Raises:
            CaptureError: the input stream ended while the device was open,
                e.g. the microphone was unplugged.
        """
        with self._lock:
            if self._running and self._stream_lost():
                raise CaptureError("Audio input stream stopped unexpectedly")
            pcm = bytes(self._pcm)
            self._pcm = bytearray()
        if not pcm:
            return None
        return AudioChunk(data=pcm_to_wav(pcm, self.sample_rate, self.channels), encoding="audio/wav")

    def close(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            stream = self._stream
            self._stream = None
        # Stopping waits for the audio callback, which takes the lock.
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as exc:
                logger.warning(f"Error while closing the input stream: {exc}")
        logger.info("Microphone released")

    def _stream_lost(self) -> bool:
        if self._finished:
            return True
        return self._stream is not None and not self._stream.active

    def _on_finished(self) -> None:
        # Called by PortAudio when the stream ends, whether or not we stopped it.
        if self._running:
            self._finished = True

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning(f"Audio input status: {status}")
        if not self._running or np is None:
            return
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        with self._lock:
            self._pcm.extend(payload)

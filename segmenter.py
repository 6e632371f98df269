"""Cuts continuous microphone capture into independently transcribable chunks."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

from errors import CaptureError
from interfaces import CaptureDevice
from models import AudioChunk

MIN_CHUNK_BYTES = 5000
DEFAULT_INTERVAL_S = 4.0

ChunkCallback = Callable[[AudioChunk], None]
CaptureErrorCallback = Callable[[CaptureError], None]


class AudioSegmenter:
    """Emits one chunk per interval on a wall-clock timer.

    The timer never waits for earlier chunks to be transcribed. Chunks below
    ``min_chunk_bytes`` are near-silence and are dropped without using a
    sequence number, so the numbers of emitted chunks stay contiguous.

    If the device fails while capturing, the timer stops, the device is
    released and ``on_error`` is called from the timer thread.
    """

    def __init__(
        self,
        device: CaptureDevice,
        on_chunk: ChunkCallback,
        interval_s: float = DEFAULT_INTERVAL_S,
        min_chunk_bytes: int = MIN_CHUNK_BYTES,
        on_error: Optional[CaptureErrorCallback] = None,
    ) -> None:
        self._device = device
        self._on_chunk = on_chunk
        self._on_error = on_error
        self.interval_s = interval_s
        self.min_chunk_bytes = min_chunk_bytes
        self._stop_event = threading.Event()
        self._emit_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._next_sequence = 0
        self._device_open = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def chunks_emitted(self) -> int:
        return self._next_sequence

    def start(self) -> None:
        """Acquire the capture device and start the interval timer.

        Raises:
            CaptureError: the device could not be opened.
        """
        if self.running:
            return
        self._device.open()
        self._device_open = True
        self._stop_event.clear()
        self._next_sequence = 0
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Cancel the timer, send the final partial chunk and release the device."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval_s + 1.0)
        self._thread = None
        if not self._device_open:
            return
        try:
            self._emit()
        except CaptureError as exc:
            logger.warning(f"Final chunk lost: {exc}")
        finally:
            self._release()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            try:
                self._emit()
            except CaptureError as exc:
                logger.error(f"Capture failed, stopping segmenter: {exc}")
                self._stop_event.set()
                self._release()
                if self._on_error:
                    self._on_error(exc)
                return

    def _release(self) -> None:
        with self._emit_lock:
            if not self._device_open:
                return
            self._device_open = False
        self._device.close()

    def _emit(self) -> None:
        with self._emit_lock:
            if not self._device_open:
                return
            chunk = self._device.cut()
            if chunk is None:
                return
            if chunk.size < self.min_chunk_bytes:
                logger.debug(f"Skipping small chunk: {chunk.size} bytes")
                return
            chunk.sequence = self._next_sequence
            self._next_sequence += 1
        logger.info(f"Chunk #{chunk.sequence} ready: {chunk.size} bytes")
        self._on_chunk(chunk)

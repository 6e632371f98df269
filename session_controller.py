"""State-machine based session orchestration.

Segmenter chunks are transcribed on their own threads and never wait for one
another; the accumulator puts fragments back in capture order. Each commit
queues the full transcript for annotation, and a single worker drains that
queue, so annotation never holds up capture or transcription.
"""

from __future__ import annotations

import math
import threading
import time
from functools import partial
from queue import Empty, Queue
from typing import Callable, Optional

from loguru import logger

from config import CHUNK_INTERVAL_OPTIONS, DEFAULT_CHUNK_INTERVAL
from errors import ERROR_MESSAGES, INTERNAL_ERROR, RATE_LIMITED, CaptureError
from interfaces import Annotator, CaptureDevice, Transcriber
from models import (
    Annotation,
    AnnotationResult,
    AnnotationStatus,
    AudioChunk,
    OverlayToken,
    SessionState,
    TranscriptionResult,
)
from retry import DEFAULT_WAIT_S
from segmenter import MIN_CHUNK_BYTES, AudioSegmenter
from transcript import AnnotationMerger, TranscriptAccumulator, render_overlay

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[str], None]
AnnotationsCallback = Callable[[list[Annotation]], None]
AnnotationStatusCallback = Callable[[AnnotationStatus], None]
ErrorCallback = Callable[[str, str], None]


def format_elapsed(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class Countdown:
    """One-shot countdown reported in whole seconds.

    Restarting or cancelling invalidates the previous timer even if it has
    already begun firing; a stale timer never calls its ``on_elapsed``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._deadline = 0.0
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def active(self) -> bool:
        return self.remaining() > 0

    def remaining(self) -> int:
        return max(0, math.ceil(self._deadline - self._clock()))

    def start(self, seconds: float, on_elapsed: Optional[Callable[[], None]] = None) -> None:
        with self._lock:
            self._cancel_locked()
            self._deadline = self._clock() + seconds
            self._timer = threading.Timer(seconds, self._fire, args=(self._generation, on_elapsed))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._deadline = 0.0

    def _fire(self, generation: int, on_elapsed: Optional[Callable[[], None]]) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        if on_elapsed:
            on_elapsed()


class SessionController:
    def __init__(
        self,
        capture: CaptureDevice,
        transcriber: Transcriber,
        annotator: Annotator,
        chunk_interval_s: int = DEFAULT_CHUNK_INTERVAL,
        min_chunk_bytes: int = MIN_CHUNK_BYTES,
        annotation_enabled: bool = True,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_annotations: Optional[AnnotationsCallback] = None,
        on_annotation_status: Optional[AnnotationStatusCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capture = capture
        self._transcriber = transcriber
        self._annotator = annotator
        self._chunk_interval_s = chunk_interval_s
        self._min_chunk_bytes = min_chunk_bytes
        self._annotation_enabled = annotation_enabled
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_annotations = on_annotations
        self._on_annotation_status = on_annotation_status
        self._on_error = on_error
        self._clock = clock

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._generation = 0
        self._segmenter: Optional[AudioSegmenter] = None
        self._started_at: Optional[float] = None
        self._elapsed_s = 0
        self.last_error = ""

        self._accumulator = TranscriptAccumulator(on_commit=self._on_commit)
        self._merger = AnnotationMerger()
        self._rate_limit = Countdown(clock)
        self._annotation_wait = Countdown(clock)
        self._annotation_status = AnnotationStatus.IDLE
        self._pending_annotation = ""
        self._annotation_queue: Queue[Optional[tuple[int, str]]] = Queue()
        self._annotation_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def transcript(self) -> str:
        return self._accumulator.text

    @property
    def annotations(self) -> list[Annotation]:
        return self._merger.entries

    @property
    def annotation_status(self) -> AnnotationStatus:
        return self._annotation_status

    @property
    def annotation_enabled(self) -> bool:
        return self._annotation_enabled

    @property
    def chunk_interval_s(self) -> int:
        return self._chunk_interval_s

    @property
    def capturing(self) -> bool:
        return self._segmenter is not None

    @property
    def elapsed_s(self) -> int:
        if self._started_at is not None:
            return int(self._clock() - self._started_at)
        return self._elapsed_s

    @property
    def rate_limit_remaining(self) -> int:
        return self._rate_limit.remaining()

    @property
    def annotation_wait_remaining(self) -> int:
        return self._annotation_wait.remaining()

    @property
    def can_start(self) -> bool:
        return not self.capturing and not self._rate_limit.active

    @property
    def can_retry_annotation(self) -> bool:
        return self._annotation_status == AnnotationStatus.RATE_LIMITED and not self._annotation_wait.active

    def overlay_tokens(self) -> list[OverlayToken]:
        text = self._accumulator.text
        if not text:
            return []
        entries = self._merger.entries
        if not self._annotation_enabled or not entries:
            return [OverlayToken(text)]
        return render_overlay(text, entries)

    # ------------------------------------------------------------------
    # Recording session
    # ------------------------------------------------------------------

    def start_session(self) -> bool:
        with self._lock:
            if not self.can_start:
                return False
            self._session_id += 1
            self._generation += 1
            self._accumulator.reset()
            self._merger.clear()
            self._pending_annotation = ""
            self._annotation_wait.cancel()
            self._set_annotation_status(AnnotationStatus.IDLE)
            self.last_error = ""

            segmenter = AudioSegmenter(
                self._capture,
                partial(self._dispatch_chunk, self._session_id),
                interval_s=self._chunk_interval_s,
                min_chunk_bytes=self._min_chunk_bytes,
                on_error=partial(self._on_capture_failed, self._session_id),
            )
            try:
                segmenter.start()
            except CaptureError as exc:
                logger.error(f"Could not start recording: {exc}")
                self._transition(SessionState.ERROR)
                self._emit_error(exc.code, ERROR_MESSAGES[exc.code])
                return False

            self._segmenter = segmenter
            self._started_at = self._clock()
            self._elapsed_s = 0
            self._transition(SessionState.RECORDING)
            logger.info(f"Session {self._session_id} started, chunk interval {self._chunk_interval_s}s")
            return True

    def stop_session(self) -> None:
        with self._lock:
            segmenter = self._segmenter
            if segmenter is None:
                return
            self._elapsed_s = self.elapsed_s
            self._started_at = None

        # The segmenter thread dispatches through this controller; stop it unlocked.
        segmenter.stop()

        with self._lock:
            self._segmenter = None
            if self._state == SessionState.RECORDING:
                self._transition(SessionState.IDLE)
            logger.info(f"Session {self._session_id} stopped after {format_elapsed(self._elapsed_s)}")

    def _on_capture_failed(self, session_id: int, exc: CaptureError) -> None:
        """The device was lost mid-session; the segmenter has already released it."""
        with self._lock:
            if session_id != self._session_id or self._segmenter is None:
                return
            self._segmenter = None
            self._elapsed_s = self.elapsed_s
            self._started_at = None
            logger.error(f"Session {session_id} lost its capture device: {exc}")
            self._transition(SessionState.ERROR)
            self._emit_error(exc.code, ERROR_MESSAGES[exc.code])

    def set_chunk_interval(self, seconds: int) -> bool:
        if seconds not in CHUNK_INTERVAL_OPTIONS:
            raise ValueError(f"chunk interval must be one of {CHUNK_INTERVAL_OPTIONS}, got {seconds}")
        with self._lock:
            if self.capturing:
                return False
            self._chunk_interval_s = seconds
            return True

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._accumulator.clear()
            self._merger.clear()
            self._pending_annotation = ""
            self._annotation_wait.cancel()
            self._set_annotation_status(AnnotationStatus.IDLE)
        if self._on_transcript:
            self._on_transcript("")

    def shutdown(self) -> None:
        self.stop_session()
        self._rate_limit.cancel()
        self._annotation_wait.cancel()
        thread = self._annotation_thread
        if thread is not None:
            self._annotation_queue.put(None)
            thread.join(timeout=1.0)
            self._annotation_thread = None

    def _dispatch_chunk(self, session_id: int, chunk: AudioChunk) -> None:
        threading.Thread(target=self._transcribe, args=(session_id, chunk), daemon=True).start()

    def _transcribe(self, session_id: int, chunk: AudioChunk) -> None:
        try:
            result = self._transcriber.transcribe(chunk)
        except Exception as exc:
            logger.exception(f"Transcription of chunk #{chunk.sequence} crashed")
            result = TranscriptionResult(
                status=500, code=INTERNAL_ERROR, error=ERROR_MESSAGES[INTERNAL_ERROR], details=str(exc)
            )
        self._handle_transcription(session_id, chunk.sequence, result)

    def _handle_transcription(self, session_id: int, sequence: int, result: TranscriptionResult) -> None:
        with self._lock:
            if session_id != self._session_id:
                logger.info(f"Discarding chunk #{sequence} result from session {session_id}")
                return
            if result.ok:
                self.last_error = ""
                self._accumulator.submit(sequence, result.text)
                return

            self._accumulator.submit(sequence, None)
            if result.status == 429:
                wait = result.retry_after or DEFAULT_WAIT_S
                self._enter_rate_limit(wait)
                self._emit_error(result.code or RATE_LIMITED, f"Rate limited: resuming in {wait}s")
            elif result.status == 400:
                logger.debug(f"Chunk #{sequence} rejected as invalid, likely silence: {result.details}")
            else:
                self._emit_error(result.code or INTERNAL_ERROR, f"{result.error or 'API Error'} ({result.status})")

    def _enter_rate_limit(self, seconds: int) -> None:
        self._rate_limit.start(seconds, self._on_rate_limit_elapsed)
        if self._state != SessionState.ERROR:
            self._transition(SessionState.RATE_LIMITED)

    def _on_rate_limit_elapsed(self) -> None:
        with self._lock:
            if self._state != SessionState.RATE_LIMITED:
                return
            self._transition(SessionState.RECORDING if self.capturing else SessionState.IDLE)

    # ------------------------------------------------------------------
    # Annotation
    # ------------------------------------------------------------------

    def set_annotation_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._annotation_enabled = enabled

    def retry_annotations(self) -> bool:
        with self._lock:
            if not self._annotation_enabled or not self.can_retry_annotation:
                return False
            text = self._pending_annotation or self._accumulator.text
            if not text:
                return False
            self._enqueue_annotation(text)
            return True

    def _on_commit(self, text: str) -> None:
        if self._on_transcript:
            self._on_transcript(text)
        if self._annotation_enabled:
            self._enqueue_annotation(text)

    def _enqueue_annotation(self, text: str) -> None:
        if self._annotation_thread is None:
            self._annotation_thread = threading.Thread(target=self._annotation_worker, daemon=True)
            self._annotation_thread.start()
        self._annotation_queue.put((self._generation, text))

    def _annotation_worker(self) -> None:
        while True:
            item = self._annotation_queue.get()
            if item is None:
                return
            # Transcripts only grow, so only the newest queued text matters.
            stop_after = False
            while True:
                try:
                    newer = self._annotation_queue.get_nowait()
                except Empty:
                    break
                if newer is None:
                    stop_after = True
                    break
                item = newer
            self._run_annotation(*item)
            if stop_after:
                return

    def _run_annotation(self, generation: int, text: str) -> None:
        with self._lock:
            if generation != self._generation or not self._annotation_enabled:
                return
            self._set_annotation_status(AnnotationStatus.LOADING)

        result: Optional[AnnotationResult]
        try:
            result = self._annotator.annotate(text)
        except Exception:
            logger.exception("Annotation crashed")
            result = None

        with self._lock:
            if generation != self._generation:
                return
            if not self._annotation_enabled:
                self._set_annotation_status(AnnotationStatus.IDLE)
                return
            if result is None or (result.status != 200 and not result.rate_limited):
                self._set_annotation_status(AnnotationStatus.ERROR)
                return
            if result.rate_limited:
                self._pending_annotation = text
                self._annotation_wait.start(result.wait_seconds or DEFAULT_WAIT_S)
                self._set_annotation_status(AnnotationStatus.RATE_LIMITED)
                return

            added = self._merger.merge(result.annotations)
            self._pending_annotation = ""
            self._set_annotation_status(AnnotationStatus.DONE)
            if added and self._on_annotations:
                self._on_annotations(self._merger.entries)

    def _set_annotation_status(self, status: AnnotationStatus) -> None:
        if self._annotation_status == status:
            return
        self._annotation_status = status
        if self._on_annotation_status:
            self._on_annotation_status(status)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit_error(self, code: str, message: str) -> None:
        self.last_error = message
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)

"""Pipeline controller.

Drives one *run* from an accepted upload to a terminal outcome:

    Idle -> Uploading -> Recognizing -> Resolving -> Succeeded | Failed -> Idle

The controller owns the UI-facing state (current state, progress, last
notification, last result) and the session-wide :class:`ScanStats`, and
publishes every change as an event so a presentation layer can subscribe
instead of polling. Stages only raise; every
:class:`~tunefind.errors.TunefindError` is caught here, turned into a
user-visible notification and recorded as a failed run.

Only one run is live at a time. Accepting a new file (or calling
:meth:`PipelineController.reset`) bumps a generation counter; a run that
finds the counter moved when one of its outbound calls returns is abandoned
with :class:`~tunefind.errors.RunSuperseded`, without touching state, events
or stats.
"""

import logging
import threading
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel

from . import progress
from .catalog import CatalogResolver, CatalogTrack
from .errors import InvalidFileType, NoPendingUpload, RunSuperseded, TunefindError
from .events import (
    Listener,
    Notification,
    PipelineEvent,
    PipelineState,
    ProgressUpdated,
    RunCompleted,
    StateChanged,
)
from .recognize import RecognitionClient, RecognizedTrack
from .stats_store import ScanStats, StatsStore
from .upload_gate import UploadedAudio, accept_upload, accepted_message

logger = logging.getLogger(__name__)

RECOGNIZED_MESSAGE = "Song identified successfully!"

_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.UPLOADING}),
    PipelineState.UPLOADING: frozenset({PipelineState.RECOGNIZING, PipelineState.IDLE}),
    PipelineState.RECOGNIZING: frozenset(
        {PipelineState.RESOLVING, PipelineState.FAILED, PipelineState.IDLE}
    ),
    PipelineState.RESOLVING: frozenset(
        {PipelineState.SUCCEEDED, PipelineState.FAILED, PipelineState.IDLE}
    ),
    PipelineState.SUCCEEDED: frozenset({PipelineState.IDLE}),
    PipelineState.FAILED: frozenset({PipelineState.IDLE}),
}


class ScanResult(BaseModel):
    success: bool
    state: PipelineState
    recognized: Optional[RecognizedTrack] = None
    track: Optional[CatalogTrack] = None
    embed_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    stats: ScanStats


class PipelineController:
    def __init__(
        self,
        recognizer: RecognitionClient,
        resolver: CatalogResolver,
        stats_store: StatsStore,
        auto_start: bool = True,
    ):
        self.recognizer = recognizer
        self.resolver = resolver
        self.stats_store = stats_store
        self.auto_start = auto_start
        self.progress = progress.ProgressTracker()
        self.state = PipelineState.IDLE
        self.stats = stats_store.load()
        self.last_result: Optional[ScanResult] = None
        self.last_notification: Optional[Notification] = None
        self._pending: Optional[UploadedAudio] = None
        self._generation = 0
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    # ---------- EVENTS ----------
    def subscribe(self, listener: Listener):
        """Register ``listener`` for every event; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: PipelineEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Pipeline listener %r failed on %s", listener, type(event).__name__)

    def _notify(self, level: str, message: str, code: Optional[str] = None):
        note = Notification(level=level, message=message, code=code)
        self.last_notification = note
        self._emit(note)

    def _set_state(self, new: PipelineState):
        if new == self.state:
            return
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} -> {new.value}")
        previous, self.state = self.state, new
        self._emit(StateChanged(previous=previous, current=new))

    def _advance(self, phase: int):
        if self.progress.advance(phase):
            percent, label = self.progress.snapshot()
            self._emit(ProgressUpdated(percent=percent, label=label))

    def _checkpoint(self, generation: int):
        # caller holds the lock
        if generation != self._generation:
            raise RunSuperseded()

    def _abandon_current(self):
        self._generation += 1
        self._pending = None
        self.progress.reset()
        if self.state != PipelineState.IDLE:
            self._set_state(PipelineState.IDLE)

    # ---------- OPERATIONS ----------
    def submit(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
        start: Optional[bool] = None,
    ) -> Optional[ScanResult]:
        """Pass a candidate file through the upload gate.

        A rejected file only produces an error notification (and re-raises
        InvalidFileType); state and stats stay as they were. An accepted file
        abandons any in-flight run and becomes the pending audio. When
        ``start`` is true (``auto_start`` when omitted) the run begins right
        away and its result is returned.
        """
        try:
            audio = accept_upload(filename, content_type, data)
        except InvalidFileType as exc:
            with self._lock:
                self._notify("error", exc.message, exc.code)
            logger.info("Rejected upload %r (%s)", filename, content_type)
            raise

        run_now = self.auto_start if start is None else start
        with self._lock:
            self._abandon_current()
            self._pending = audio
            self.last_result = None
            self._set_state(PipelineState.UPLOADING)
            self._advance(progress.PREPARING)
            self._notify("success", accepted_message(audio))
            # pending audio is claimed before the lock is released
            run = self._start_run() if run_now else None
        logger.info("Accepted upload %r (%s, %s)", audio.filename, audio.format_label, audio.size_label)

        if run is None:
            return None
        return self._run(*run)

    def analyze(self) -> ScanResult:
        """Run recognition and resolution on the pending audio."""
        with self._lock:
            audio, generation = self._start_run()
        return self._run(audio, generation)

    def reset(self):
        """Return to Idle, abandoning whatever run is pending or in flight."""
        with self._lock:
            self._abandon_current()
            self.last_result = None

    # ---------- RUN ----------
    def _start_run(self) -> Tuple[UploadedAudio, int]:
        # caller holds the lock
        if self._pending is None or self.state != PipelineState.UPLOADING:
            raise NoPendingUpload()
        audio, self._pending = self._pending, None
        self._set_state(PipelineState.RECOGNIZING)
        self._advance(progress.FINGERPRINTING)
        return audio, self._generation

    def _token_ready(self, generation: int):
        with self._lock:
            self._checkpoint(generation)
            self._advance(progress.IDENTIFYING)

    def _run(self, audio: UploadedAudio, generation: int) -> ScanResult:
        recognized: Optional[RecognizedTrack] = None
        try:
            recognized = self.recognizer.recognize(audio)
            with self._lock:
                self._checkpoint(generation)
                self._advance(progress.ANALYZING)
                self._notify("success", RECOGNIZED_MESSAGE)
                self._set_state(PipelineState.RESOLVING)
                self._advance(progress.MATCHING)

            track = self.resolver.resolve(recognized, on_authorized=lambda: self._token_ready(generation))
            with self._lock:
                self._checkpoint(generation)
                self._advance(progress.FINALIZING)
        except RunSuperseded:
            logger.info("Discarding result of superseded run %d", generation)
            raise
        except TunefindError as exc:
            logger.warning("Scan failed [%s]: %s", exc.code, exc.message)
            return self._finish(generation, recognized=recognized, error=exc)
        return self._finish(generation, recognized=recognized, track=track)

    # ---------- TERMINAL OUTCOME ----------
    def _finish(
        self,
        generation: int,
        recognized: Optional[RecognizedTrack] = None,
        track: Optional[CatalogTrack] = None,
        error: Optional[TunefindError] = None,
    ) -> ScanResult:
        success = error is None
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding result of superseded run %d", generation)
                raise RunSuperseded()
            self.stats = self.stats.record(success)
            try:
                self.stats_store.save(self.stats)
            except Exception:
                logger.exception("Could not persist scan stats")
            if success:
                self._advance(progress.COMPLETE)
                self._set_state(PipelineState.SUCCEEDED)
            else:
                self.progress.reset()
                self._notify("error", error.message, error.code)
                self._set_state(PipelineState.FAILED)
            result = ScanResult(
                success=success,
                state=self.state,
                recognized=recognized,
                track=track,
                embed_url=track.embed_url if track else None,
                error=error.message if error else None,
                error_code=error.code if error else None,
                stats=self.stats,
            )
            self.last_result = result
            self._emit(RunCompleted(success=success, stats=self.stats))
        logger.info("%s (total=%d)", "Successful Scan" if success else "Failed Scan", self.stats.total)
        return result

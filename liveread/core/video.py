"""
Live frame processing for LiveRead.

Contains the per-frame engine that decides when to emit text, and the
pipeline that feeds it from a camera, video file or folder of frames.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

import numpy as np
from tqdm import tqdm

from .detection import LineAssembler, RectangleDetector
from .postprocessing import StabilityWindow
from .preprocessing import RoiCropper
from .recognition import create_engine
from .tracking import RoiTracker
from .utils import (
    BoundingBox, Emission, EmissionSource, EngineConfig, EngineState,
    Precision, RecognitionError, Token, count_frames, iter_frames, save_emission,
)


Detector = Callable[[Any], Optional[BoundingBox]]
Recognizer = Callable[[Any, Precision], List[Token]]
Cropper = Callable[[Any, Optional[BoundingBox]], Tuple[Any, Tuple[float, float]]]


class StateEvent(str, Enum):
    RESET = "reset"
    FRAME = "frame"
    SCENE_CHANGE = "scene_change"
    FIRE_STARTED = "fire_started"
    FIRE_DELIVERED = "fire_delivered"


def project_state(previous: EngineState, event: StateEvent) -> EngineState:
    """
    Observable engine state after an event.

    Reporting only; firing decisions never read it. ``ready`` holds until
    the next reset, scene change or fire.
    """
    if event == StateEvent.RESET:
        return EngineState.FINDING_ROI
    if event == StateEvent.SCENE_CHANGE:
        return EngineState.UNSTABLE
    if event == StateEvent.FIRE_STARTED:
        return EngineState.PROCESSING
    if event == StateEvent.FIRE_DELIVERED:
        return EngineState.READY
    if previous in (EngineState.FINDING_ROI, EngineState.PROCESSING):
        return EngineState.UNSTABLE
    return previous


class LiveOCREngine:
    """
    Decides, frame by frame, when live OCR content is worth emitting.

    Owns the stability window, the last emission signature, the retained
    document rectangle, the cooldown clock and the one-shot flag. All of it
    is mutated only inside ``submit_frame`` (and ``reset``) under one lock;
    a frame arriving while another is in flight is dropped, including a
    frame submitted by a listener during synchronous delivery. A ``reset``
    called from such a listener is applied once the frame finishes.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        detector: Optional[Detector] = None,
        cropper: Optional[Cropper] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        async_delivery: bool = False,
        verbose: bool = False
    ):
        self.config = (config or EngineConfig()).validate()
        self.recognizer = recognizer
        self.detector = detector
        self.cropper = cropper or RoiCropper()
        self.verbose = verbose

        self.assembler = LineAssembler(
            min_row_threshold=self.config.min_row_threshold,
            row_height_ratio=self.config.row_height_ratio
        )
        self.roi_tracker = RoiTracker(reset_iou=self.config.roi_reset_iou)
        self.stability = StabilityWindow(
            window_size=self.config.window_size,
            min_lines=self.config.min_lines,
            convergence_threshold=self.config.convergence_threshold,
            repeat_threshold=self.config.repeat_threshold,
            fire_cooldown=self.config.fire_cooldown,
            clock=clock
        )

        # Single worker keeps deliveries in production order
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="liveread-emit")
            if async_delivery else None
        )
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._reset_pending = False
        self._stats_lock = threading.Lock()
        self._force_capture = False
        self._listeners: List[Callable[[Emission], None]] = []
        self._state_listeners: List[Callable[[EngineState], None]] = []

        self.state = EngineState.FINDING_ROI
        self.stable_text: Optional[str] = None
        self.last_text: Optional[str] = None
        self.last_emission: Optional[Emission] = None
        self.frames_seen = 0
        self.frames_dropped = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def one_shot_pending(self) -> bool:
        return self._force_capture

    def request_one_shot(self) -> None:
        """Force an unconditional capture of the next frame."""
        self._force_capture = True

    def subscribe(self, callback: Callable[[Emission], None]) -> None:
        self._listeners.append(callback)

    def subscribe_state(self, callback: Callable[[EngineState], None]) -> None:
        self._state_listeners.append(callback)

    def reset(self) -> None:
        """Forget the window, signature, rectangle and any pending one-shot."""
        if self._owner == threading.get_ident():
            # Called from a listener while this thread holds the frame lock
            self._reset_pending = True
            return
        with self._lock:
            self._clear()

    def submit_frame(
        self,
        frame: Any,
        forced: bool = False,
        frame_index: Optional[int] = None
    ) -> Optional[Emission]:
        """
        Process one frame.

        Args:
            frame: Opaque frame handed to the detector and cropper
            forced: Capture this frame unconditionally
            frame_index: Optional index recorded on the emission

        Returns:
            The Emission produced by this frame, or None
        """
        if not self._lock.acquire(blocking=False):
            with self._stats_lock:
                self.frames_dropped += 1
            return None

        self._owner = threading.get_ident()
        try:
            self.frames_seen += 1
            # Consumed before recognition so a failed attempt is not retried
            forced = forced or self._force_capture
            self._force_capture = False
            return self._handle(frame, forced, frame_index)
        finally:
            while self._reset_pending:
                self._reset_pending = False
                self._clear()
            self._owner = None
            self._lock.release()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -------------------------------------------------------------------------
    # Frame handling
    # -------------------------------------------------------------------------

    def _clear(self) -> None:
        self.stability.clear()
        self.roi_tracker.clear()
        self._force_capture = False
        self.stable_text = None
        self.last_text = None
        self._advance(StateEvent.RESET)

    def _handle(self, frame: Any, forced: bool, frame_index: Optional[int]) -> Optional[Emission]:
        try:
            rect = None
            if self.detector is not None:
                rect = _collaborate("Rectangle detection", self.detector, frame)

            roi = self.roi_tracker.update(rect, forced=forced)
            if roi.scene_changed:
                self.stability.clear()
                self._advance(StateEvent.SCENE_CHANGE)
                if self.verbose:
                    print(f"[Engine] Scene change (IoU {roi.iou:.2f}), window reset")

            image, image_size = _collaborate("Cropping", self.cropper, frame, rect)
            if not forced:
                self._advance(StateEvent.FRAME)

            precision = Precision.ACCURATE if forced else Precision.FAST
            tokens = _collaborate("Recognition", self.recognizer, image, precision)
            lines = _collaborate("Line assembly", self.assembler.assemble, tokens, image_size)
        except RecognitionError as e:
            print(f"[Engine] Frame dropped: {e}")
            return None

        if forced:
            return self._emit_forced(lines, frame_index)

        decision = self.stability.update(lines)
        if self.verbose:
            print(f"[Engine] {len(lines)} lines, window {len(self.stability)}/{self.config.window_size}: {decision.reason}")

        if not decision.fired:
            return None

        self._advance(StateEvent.FIRE_STARTED)
        emission = Emission(
            text="\n".join(decision.lines),
            lines=decision.lines,
            source=EmissionSource.AUTO,
            frame_index=frame_index
        )
        self.stable_text = emission.text
        self._deliver(emission)
        return emission

    def _emit_forced(self, lines: List[str], frame_index: Optional[int]) -> Emission:
        self.stability.adopt(lines)
        emission = Emission(
            text="\n".join(lines),
            lines=list(lines),
            source=EmissionSource.FORCED,
            frame_index=frame_index
        )
        self.last_text = emission.text
        self._deliver(emission)
        return emission

    def _deliver(self, emission: Emission) -> None:
        self.last_emission = emission
        for callback in list(self._listeners):
            self._post(callback, emission)
        self._advance(StateEvent.FIRE_DELIVERED)

    def _advance(self, event: StateEvent) -> None:
        new_state = project_state(self.state, event)
        if new_state == self.state:
            return
        self.state = new_state
        for callback in list(self._state_listeners):
            self._post(callback, new_state)

    def _post(self, callback: Callable, value: Any) -> None:
        if self._executor is not None:
            self._executor.submit(_safe_call, callback, value)
        else:
            _safe_call(callback, value)


def _collaborate(stage: str, func: Callable, *args: Any) -> Any:
    """Call an external collaborator, wrapping any failure in RecognitionError."""
    try:
        return func(*args)
    except RecognitionError as e:
        raise RecognitionError(f"{stage} failed: {e}") from e
    except Exception as e:
        raise RecognitionError(f"{stage} failed: {type(e).__name__}: {e}") from e


def _safe_call(callback: Callable, value: Any) -> None:
    try:
        callback(value)
    except Exception as e:
        print(f"[Engine] Listener {getattr(callback, '__name__', callback)!r} failed: {e}")


def create_live_engine(
    engine: Optional[str] = None,
    lang: str = "en",
    config: Optional[EngineConfig] = None,
    detect_roi: bool = True,
    enhance: bool = False,
    async_delivery: bool = False,
    verbose: bool = False
) -> LiveOCREngine:
    """Build an engine wired to the default OpenCV and OCR adapters."""
    return LiveOCREngine(
        recognizer=create_engine(engine, lang=lang),
        detector=RectangleDetector() if detect_roi else None,
        cropper=RoiCropper(enhance=enhance),
        config=config,
        async_delivery=async_delivery,
        verbose=verbose
    )


class LiveOCRPipeline:
    """Feeds frames from a source into a LiveOCREngine and collects results."""

    def __init__(
        self,
        engine: LiveOCREngine,
        out_dir: Optional[str] = None,
        scan_at: Iterable[int] = (),
        keyword: Optional[str] = None,
        show_progress: bool = True
    ):
        self.engine = engine
        self.out_path = Path(out_dir) if out_dir else None
        self.scan_at = set(scan_at)
        self.keyword = keyword
        self.show_progress = show_progress

    def run(self, source: Union[str, int]) -> List[Emission]:
        """
        Process every frame from a source.

        Args:
            source: Camera index, video file, image, or folder of frames

        Returns:
            Emissions in the order they were produced
        """
        total = count_frames(source)
        print(f"[Pipeline] Reading frames from {source}" + (f" ({total} frames)" if total else ""))

        emissions = []
        frames = iter_frames(source)
        for frame_idx, frame in tqdm(frames, total=total, desc="Processing frames", disable=not self.show_progress):
            emission = self.process_frame(frame_idx, frame)
            if emission is not None:
                emissions.append(emission)

        print(f"[Pipeline] {self.engine.frames_seen} frames, {len(emissions)} emissions")
        return emissions

    def process_frame(self, frame_idx: int, frame: np.ndarray) -> Optional[Emission]:
        if frame_idx in self.scan_at:
            self.engine.request_one_shot()

        emission = self.engine.submit_frame(frame, frame_index=frame_idx)
        if emission is None:
            return None

        if self.out_path is not None:
            save_emission(emission, self.out_path, frame_idx)

        status = self.status(emission)
        print(f"\n[Pipeline] Frame {frame_idx}: {emission.source.value} capture, {len(emission.lines)} lines [{status}]")
        return emission

    def status(self, emission: Emission) -> str:
        """READY when the emission contains the keyword (or none is set), HOLD otherwise."""
        if not self.keyword:
            return "READY"
        return "READY" if emission.contains(self.keyword) else "HOLD"

"""
Live recognition loop.

Owns the start/stop state of live recognition:
- Periodic sampling of the current video frame
- Face detection and embedding via the face app
- Matching against the known-face snapshot
- Publishing the current detection list
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..config import Config
from ..errors import (
    AlreadyRunning,
    DetectionCallFailed,
    EmbeddingDimensionError,
    EmptyKnownSet,
    FrameUnavailable,
    ModelsNotLoaded,
)
from ..logging_config import get_logger
from .matching import match_embedding
from .types import (
    UNKNOWN_NAME,
    ControllerState,
    Detection,
    FaceObservation,
    KnownIdentity,
)

logger = get_logger(__name__)

DetectionSink = Callable[[Tuple[Detection, ...]], None]
KnownLoader = Callable[[], Sequence[KnownIdentity]]


class RecognitionController:
    """
    State machine for live recognition: IDLE <-> SAMPLING.

    start(), stop() and tick() are the only mutators. Sampling runs on a
    single background thread, so at most one tick runs at a time; a tick
    whose detection call is still pending when the next interval fires is
    skipped. Results of a tick that finishes after stop() are discarded.
    """

    def __init__(
        self,
        frame_source: Any,
        embedder: Any,
        config: Config,
        sink: Optional[DetectionSink] = None,
        known_loader: Optional[KnownLoader] = None
    ):
        """
        Initialize the controller.

        Args:
            frame_source: Object with current_frame() -> frame or None
            embedder: Object with is_ready() and detect(frame) -> observations
            config: Service configuration
            sink: Called with every newly published detection tuple
            known_loader: Returns the full known-identity set when called
        """
        self.frame_source = frame_source
        self.embedder = embedder
        self.config = config
        self._sink = sink
        self._known_loader = known_loader

        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._state = ControllerState.IDLE
        self._generation = 0
        self._stop_flag: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='face-detect')
        self._pending: Optional[Future] = None

        self._snapshot: Tuple[KnownIdentity, ...] = ()
        self._snapshot_loaded_at: Optional[float] = None
        self._load_seq = 0
        self._installed_seq = 0
        self._reload_thread: Optional[threading.Thread] = None
        self._detections: Tuple[Detection, ...] = ()
        self.ticks_published = 0

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ControllerState.SAMPLING

    @property
    def detections(self) -> Tuple[Detection, ...]:
        """Currently published detections (immutable)."""
        return self._detections

    @property
    def known_identities(self) -> Tuple[KnownIdentity, ...]:
        return self._snapshot

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Start periodic sampling.

        Raises:
            AlreadyRunning: If recognition is already sampling
            ModelsNotLoaded: If the face models are not ready; nothing is scheduled
        """
        with self._lock:
            if self._state is ControllerState.SAMPLING:
                raise AlreadyRunning('Recognition is already running')

            if not self.embedder.is_ready():
                load_error = getattr(self.embedder, 'load_error', None)
                reason = f': {load_error}' if load_error else ''
                raise ModelsNotLoaded(f'Face recognition models are not loaded{reason}')

            self._generation += 1
            stop_flag = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_flag, self._generation),
                daemon=True,
                name=f'Recognition-{self.config.camera_id}'
            )
            self._stop_flag = stop_flag
            self._thread = thread
            self._state = ControllerState.SAMPLING
            thread.start()

        logger.info(
            f'Recognition started (interval={self.config.sampling_interval_seconds}s, '
            f'threshold={self.config.match_threshold}, '
            f'known faces={len(self._snapshot)})'
        )

    def stop(self) -> None:
        """
        Stop sampling and clear the published detections.

        Safe to call while a tick is in flight and when already idle.
        """
        with self._lock:
            if self._state is ControllerState.IDLE:
                return

            self._state = ControllerState.IDLE
            self._generation += 1
            if self._stop_flag is not None:
                self._stop_flag.set()
            self._stop_flag = None
            self._publish(())

        logger.info('Recognition stopped')

    def tick(self) -> bool:
        """
        Run one sampling cycle immediately.

        Returns:
            True if a new detection list was published
        """
        with self._lock:
            if self._state is not ControllerState.SAMPLING:
                logger.debug('Tick ignored while idle')
                return False
            generation = self._generation

        return self._tick(generation)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop sampling, wait for the sampling thread and release the worker."""
        thread = self._thread
        self.stop()

        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
        self._thread = None

        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Known-face snapshot
    # ------------------------------------------------------------------

    def set_known_identities(self, identities: Sequence[KnownIdentity]) -> None:
        """
        Replace the known-face snapshot wholesale.

        Identities whose embedding length differs from the configured
        embedding dimension are dropped with a warning.
        """
        with self._lock:
            self._load_seq += 1
            self._install_snapshot(identities, self._load_seq)

    def refresh_known_identities(self) -> bool:
        """
        Reload the snapshot from the known-face loader.

        Returns:
            True if the snapshot was replaced. On failure, or when a load
            that started later has already been installed, the current
            snapshot is kept.
        """
        if self._known_loader is None:
            return False

        with self._lock:
            self._load_seq += 1
            seq = self._load_seq

        try:
            identities = self._known_loader()
        except Exception as e:
            logger.error(f'Known-face reload failed: {e}')
            self._snapshot_loaded_at = time.monotonic()
            return False

        with self._lock:
            return self._install_snapshot(identities, seq)

    def _install_snapshot(self, identities: Sequence[KnownIdentity], seq: int) -> bool:
        if seq < self._installed_seq:
            logger.debug(f'Discarding stale known-face load #{seq}')
            return False

        dim = self.config.embedding_dim
        snapshot = []
        for identity in identities:
            if identity.embedding.size != dim:
                logger.warning(
                    f"Dropping known face '{identity.name}': embedding length "
                    f'{identity.embedding.size}, expected {dim}'
                )
                continue
            snapshot.append(identity)

        self._snapshot = tuple(snapshot)
        self._installed_seq = seq
        self._snapshot_loaded_at = time.monotonic()
        logger.info(f'Known-face snapshot updated ({len(snapshot)} identities)')
        return True

    def _maybe_reload_known(self) -> Optional[threading.Thread]:
        interval = self.config.reload_known_interval
        if self._known_loader is None or interval <= 0:
            return None

        loaded_at = self._snapshot_loaded_at
        if loaded_at is not None and time.monotonic() - loaded_at <= interval:
            return None

        with self._lock:
            if self._reload_thread is not None and self._reload_thread.is_alive():
                return None
            logger.info('Reloading known faces...')
            thread = threading.Thread(
                target=self.refresh_known_identities,
                daemon=True,
                name=f'KnownReload-{self.config.camera_id}'
            )
            self._reload_thread = thread
            thread.start()
        return thread

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _run(self, stop_flag: threading.Event, generation: int) -> None:
        """Sampling thread body: one tick per interval until stop_flag is set."""
        interval = self.config.sampling_interval_seconds
        next_tick = time.monotonic() + interval

        while not stop_flag.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self._maybe_reload_known()
                self._tick(generation)
            except Exception as e:
                logger.error(f'Unexpected error in recognition tick: {e}', exc_info=True)

            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                missed = int((now - next_tick) // interval) + 1
                next_tick += missed * interval
                logger.debug(f'Tick overran, skipped {missed} interval(s)')

        logger.debug('Sampling thread exiting')

    def _tick(self, generation: int) -> bool:
        if not self._tick_lock.acquire(blocking=False):
            logger.debug('Previous tick still running, skipping')
            return False

        try:
            pending = self._pending
            if pending is not None and not pending.done():
                logger.debug('Previous detection call still pending, skipping tick')
                return False

            try:
                detections = self._sample()
            except (FrameUnavailable, EmptyKnownSet, ModelsNotLoaded) as e:
                logger.debug(f'Tick skipped: {e}')
                return False
            except DetectionCallFailed as e:
                logger.warning(f'Detection failed, publishing no detections: {e}')
                detections = ()

            with self._lock:
                if generation != self._generation or self._state is not ControllerState.SAMPLING:
                    logger.debug('Discarding result of a tick that finished after stop()')
                    return False
                self._publish(detections)
                self.ticks_published += 1

            return True
        finally:
            self._tick_lock.release()

    def _sample(self) -> Tuple[Detection, ...]:
        frame = self.frame_source.current_frame()
        if frame is None:
            raise FrameUnavailable('No frame available from video source')

        if not self.embedder.is_ready():
            raise ModelsNotLoaded('Face recognition models are not loaded')

        snapshot = self._snapshot
        if not snapshot:
            raise EmptyKnownSet('No registered faces to match against')

        observations = self._detect(frame)
        return self._match(observations, snapshot)

    def _detect(self, frame: Any) -> List[FaceObservation]:
        timeout = self.config.effective_detection_timeout

        try:
            future = self._executor.submit(self.embedder.detect, frame)
            self._pending = future
            return list(future.result(timeout=timeout))
        except FutureTimeout:
            raise DetectionCallFailed(f'Detection timed out after {timeout:.2f}s')
        except Exception as e:
            raise DetectionCallFailed(str(e)) from e

    def _match(
        self,
        observations: List[FaceObservation],
        snapshot: Tuple[KnownIdentity, ...]
    ) -> Tuple[Detection, ...]:
        threshold = self.config.match_threshold
        detections: List[Detection] = []

        for observation in observations:
            try:
                identity, confidence = match_embedding(
                    observation.embedding, snapshot, threshold
                )
            except EmbeddingDimensionError as e:
                logger.warning(f'Skipping face: {e}')
                continue

            if identity is not None:
                detections.append(Detection(identity.name, confidence, observation.region))
            elif self.config.report_unknown_faces:
                detections.append(Detection(UNKNOWN_NAME, confidence, observation.region))

        if detections:
            logger.debug(
                'Detected: ' + ', '.join(f'{d.name} ({d.confidence:.0%})' for d in detections)
            )

        return tuple(detections)

    def _publish(self, detections: Sequence[Detection]) -> None:
        self._detections = tuple(detections)

        if self._sink is not None:
            try:
                self._sink(self._detections)
            except Exception as e:
                logger.error(f'Detection sink failed: {e}')

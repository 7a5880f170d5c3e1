"""
Video streaming module.

Manages current preview frame and published detections per stream,
overlay drawing and MJPEG stream generation for Flask.
Thread-safe access using locks.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Generator, Optional, Sequence, Tuple
import numpy as np
import cv2
from .recognition.types import Detection


DEFAULT_STREAM_ID = "default"

_KNOWN_COLOR = (0, 255, 0)
_UNKNOWN_COLOR = (0, 0, 255)


@dataclass
class _StreamState:
    frame: Optional[np.ndarray] = None
    detections: Tuple[Detection, ...] = ()
    lock: threading.Lock = field(default_factory=threading.Lock)


_streams: Dict[str, _StreamState] = {}
_streams_lock = threading.Lock()


def _get_stream_state(stream_id: str) -> _StreamState:
    """
    Return/create stream state for given identifier.
    """
    state = _streams.get(stream_id)
    if state is None:
        with _streams_lock:
            state = _streams.get(stream_id)
            if state is None:
                state = _StreamState()
                _streams[stream_id] = state
    return state


def reset_streams() -> None:
    """Drop all stream state."""
    with _streams_lock:
        _streams.clear()


def set_frame(frame: Optional[np.ndarray], stream_id: str = DEFAULT_STREAM_ID) -> None:
    """
    Update current preview frame for a specific stream (thread-safe).

    Args:
        frame: New frame to set
        stream_id: Identifier of the stream (camera/service)
    """
    state = _get_stream_state(stream_id)
    with state.lock:
        state.frame = frame.copy() if frame is not None else None


def get_frame_copy(stream_id: str = DEFAULT_STREAM_ID) -> Optional[np.ndarray]:
    """
    Get a copy of current frame for specific stream (thread-safe).

    Returns:
        Copy of current frame or None
    """
    state = _get_stream_state(stream_id)
    with state.lock:
        return state.frame.copy() if state.frame is not None else None


def is_streaming(stream_id: str = DEFAULT_STREAM_ID) -> bool:
    """
    Check if streaming is active for a stream.

    Returns:
        True if current frame exists
    """
    state = _get_stream_state(stream_id)
    with state.lock:
        return state.frame is not None


def set_detections(detections: Sequence[Detection], stream_id: str = DEFAULT_STREAM_ID) -> None:
    """
    Replace the published detections for a stream.

    Used as the recognition controller's sink.
    """
    state = _get_stream_state(stream_id)
    snapshot = tuple(detections)
    with state.lock:
        state.detections = snapshot


def get_detections(stream_id: str = DEFAULT_STREAM_ID) -> Tuple[Detection, ...]:
    """Return the published detections for a stream."""
    state = _get_stream_state(stream_id)
    with state.lock:
        return state.detections


def draw_detections(frame: np.ndarray, detections: Sequence[Detection]) -> np.ndarray:
    """
    Draw detection boxes and labels on a frame.

    Args:
        frame: Frame to draw on (modified in place)
        detections: Detections to draw

    Returns:
        Frame with visualization
    """
    status_text = f'Detected: {len(detections)}'
    cv2.putText(frame, status_text, (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
    cv2.putText(frame, status_text, (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, _KNOWN_COLOR, 2)

    for detection in detections:
        x1, y1, x2, y2 = detection.region.corners()
        color = _KNOWN_COLOR if detection.is_known else _UNKNOWN_COLOR

        cv2.rectangle(frame, (x1, y1), (x2, y2), color, 2)

        label = f'{detection.name} ({detection.confidence:.0%})'
        label_top = max(0, y1 - 24)
        cv2.rectangle(frame, (x1, label_top), (x2, y1), color, cv2.FILLED)
        cv2.putText(frame, label, (x1 + 4, max(12, y1 - 7)),
                    cv2.FONT_HERSHEY_DUPLEX, 0.5, (0, 0, 0), 1)

    return frame


def generate_mjpeg_frames(stream_id: str = DEFAULT_STREAM_ID) -> Generator[bytes, None, None]:
    """
    Generate MJPEG frames for a specific stream.

    Yields:
        JPEG frame bytes with multipart headers
    """
    while True:
        frame = get_frame_copy(stream_id)

        if frame is None:
            time.sleep(0.1)
            continue

        ret, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, 85])

        if not ret:
            time.sleep(0.033)
            continue

        yield (b'--frame\r\n'
               b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')

        # ~30 FPS
        time.sleep(0.033)

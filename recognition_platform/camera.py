"""
Camera connection and frame source module.

Handles connection to various camera sources:
- Local webcams (index 0, 1, 2)
- RTSP streams
- HTTP MJPEG streams

FrameSource keeps the latest frame available for recognition and
publishes an annotated preview frame for the video feed.
"""

import threading
import time
import cv2
import numpy as np
import requests
from typing import Any, Callable, Optional, Tuple
from .config import Config
from .logging_config import get_logger
from . import streaming

logger = get_logger(__name__)

MAX_CONSECUTIVE_FAILURES = 10


def parse_camera_source(camera_source: str) -> Tuple[str, Any]:
    """
    Classify a camera source string.

    Returns:
        ('local', index) for webcam indices, ('stream', url) otherwise
    """
    source = camera_source.strip()
    try:
        return 'local', int(source)
    except ValueError:
        return 'stream', source


def is_rtsp_stream(camera_source: str) -> bool:
    return camera_source.startswith('rtsp://')


def connect_camera(config: Config, max_retries: int = 5) -> Any:
    """
    Connect to camera with retry logic.

    Args:
        config: Service configuration
        max_retries: Maximum connection attempts

    Returns:
        Opened capture object (cv2.VideoCapture or MJPEGStreamCapture)

    Raises:
        RuntimeError: If connection fails after max_retries
    """
    camera_type, source = parse_camera_source(config.camera_source)
    rtsp = camera_type == 'stream' and is_rtsp_stream(source)

    for attempt in range(max_retries):
        logger.info(f'Connecting to {camera_type} camera (attempt {attempt + 1}/{max_retries})...')

        if camera_type == 'local':
            logger.info(f'Camera index: {source}')
            video_capture = cv2.VideoCapture(source)
        else:
            logger.info(f'Camera URL: {_sanitize_url(source)}')
            video_capture = _open_stream_capture(source)
            if video_capture is not None and rtsp:
                video_capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        if video_capture is not None and video_capture.isOpened():
            ret, frame = video_capture.read()
            if ret and frame is not None:
                logger.info(f'✅ Camera connected ({camera_type}), frame size: {frame.shape[1]}x{frame.shape[0]}')
                if rtsp:
                    for _ in range(5):
                        video_capture.grab()
                return video_capture

            video_capture.release()
            logger.warning('Camera opened but failed to read frame')
        else:
            logger.warning('Failed to open camera')

        if attempt < max_retries - 1:
            wait_time = 2 ** attempt
            logger.info(f'Retrying in {wait_time} seconds...')
            time.sleep(wait_time)

    raise RuntimeError(f'Cannot connect to camera after {max_retries} attempts')


def _open_stream_capture(source: str) -> Optional[Any]:
    """
    Open an HTTP/RTSP stream.

    HTTP MJPEG streams use MJPEGStreamCapture; everything else tries the
    available OpenCV backends in turn.
    """
    if source.startswith(('http://', 'https://')):
        if '.mjpg' in source or 'mjpeg' in source.lower():
            logger.debug('Detected MJPEG stream, using HTTP reader')
            return MJPEGStreamCapture(source)

    backend_candidates = []
    if hasattr(cv2, 'CAP_FFMPEG'):
        backend_candidates.append(('CAP_FFMPEG', cv2.CAP_FFMPEG))
    backend_candidates.append(('DEFAULT', None))

    for backend_name, backend_flag in backend_candidates:
        try:
            capture = cv2.VideoCapture(source) if backend_flag is None else cv2.VideoCapture(source, backend_flag)
        except cv2.error as exc:
            logger.debug(f'Backend {backend_name} failed: {exc}')
            continue

        if capture.isOpened():
            logger.debug(f'Stream opened with backend {backend_name}')
            return capture
        capture.release()

    return None


def _sanitize_url(url: str) -> str:
    """
    Remove password from URL for logging.

    Args:
        url: URL with potential password

    Returns:
        Sanitized URL
    """
    if '://' not in url:
        return url

    protocol, rest = url.split('://', 1)
    if '@' not in rest:
        return url

    creds, host = rest.rsplit('@', 1)
    username = creds.split(':', 1)[0]
    return f'{protocol}://{username}@{host}'


class MJPEGStreamCapture:
    """
    Capture-compatible reader for HTTP MJPEG streams.

    Uses requests to read the multipart stream and decodes JPEG frames
    manually.
    """

    MAX_BUFFER_BYTES = 10 * 1024 * 1024

    def __init__(self, url: str, timeout: int = 10):
        """
        Initialize MJPEG stream reader.

        Args:
            url: HTTP URL of MJPEG stream
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout
        self._opened = False
        self._stream = None
        self._response = None
        self._buffer = b''

        try:
            logger.debug(f'Opening MJPEG stream: {_sanitize_url(url)}')
            self._response = requests.get(url, stream=True, timeout=timeout)
            if self._response.status_code == 200:
                self._stream = self._response.iter_content(chunk_size=1024)
                self._opened = True
            else:
                logger.warning(f'MJPEG stream returned status {self._response.status_code}')
        except requests.exceptions.RequestException as e:
            logger.warning(f'Failed to open MJPEG stream: {e}')

    def isOpened(self) -> bool:
        return self._opened

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        """
        Read next frame from MJPEG stream.

        Returns:
            Tuple of (success, frame)
        """
        if not self._opened or self._stream is None:
            return False, None

        try:
            while True:
                chunk = next(self._stream, None)
                if chunk is None:
                    return False, None

                self._buffer += chunk

                start = self._buffer.find(b'\xff\xd8')
                end = self._buffer.find(b'\xff\xd9', start + 2 if start != -1 else 0)

                if start != -1 and end != -1:
                    jpg = self._buffer[start:end + 2]
                    self._buffer = self._buffer[end + 2:]

                    frame = cv2.imdecode(np.frombuffer(jpg, dtype=np.uint8), cv2.IMREAD_COLOR)
                    if frame is not None:
                        return True, frame

                if len(self._buffer) > self.MAX_BUFFER_BYTES:
                    logger.warning('MJPEG buffer overflow, resetting')
                    self._buffer = b''

        except requests.exceptions.RequestException as e:
            logger.warning(f'Error reading MJPEG frame: {e}')
            return False, None

    def release(self) -> None:
        """Release stream resources."""
        self._opened = False
        if self._response is not None:
            self._response.close()
        self._stream = None
        self._buffer = b''

    def set(self, prop_id: int, value: float) -> bool:
        """Compatibility method (does nothing for MJPEG streams)."""
        return True

    def grab(self) -> bool:
        """Compatibility method for low-latency flush."""
        return True


class FrameSource:
    """
    Background camera reader holding the latest frame.

    current_frame() never blocks; it returns None until the first frame
    arrives or after the camera is lost.
    """

    def __init__(
        self,
        config: Config,
        stream_id: Optional[str] = None,
        connect: Optional[Callable[[Config], Any]] = None
    ):
        """
        Initialize frame source.

        Args:
            config: Service configuration
            stream_id: Streaming identifier for the preview feed
            connect: Opens the capture (defaults to connect_camera)
        """
        self.config = config
        self.stream_id = stream_id or config.camera_id or streaming.DEFAULT_STREAM_ID
        self._connect = connect or connect_camera
        self._frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._stop_flag = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def current_frame(self) -> Optional[np.ndarray]:
        """Copy of the latest frame, or None if not available."""
        with self._frame_lock:
            return self._frame.copy() if self._frame is not None else None

    def start(self) -> None:
        """Start the camera reader thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.debug('Frame source already running')
            return

        self._stop_flag.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f'Camera-{self.config.camera_id}'
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the reader thread and drop the latest frame."""
        self._stop_flag.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        self._set_frame(None)

    def _set_frame(self, frame: Optional[np.ndarray]) -> None:
        with self._frame_lock:
            self._frame = frame

    def _open(self) -> Optional[Any]:
        try:
            return self._connect(self.config)
        except RuntimeError as e:
            logger.error(f'Camera connection failed: {e}')
            return None

    def _run(self) -> None:
        """Read frames until stopped, reconnecting after repeated failures."""
        video_capture = self._open()
        consecutive_failures = 0
        rtsp = is_rtsp_stream(self.config.camera_source)
        frame_count = 0

        try:
            while not self._stop_flag.is_set():
                if video_capture is None:
                    self._set_frame(None)
                    if self._stop_flag.wait(2.0):
                        break
                    video_capture = self._open()
                    continue

                if rtsp and frame_count % 2 == 0:
                    video_capture.grab()

                ret, frame = video_capture.read()

                if not ret or frame is None:
                    consecutive_failures += 1
                    logger.warning(f'Failed to read frame ({consecutive_failures}/{MAX_CONSECUTIVE_FAILURES})')

                    if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                        logger.error(f'Too many failures ({consecutive_failures}), reconnecting...')
                        video_capture.release()
                        video_capture = None
                        consecutive_failures = 0
                    else:
                        self._stop_flag.wait(0.5)
                    continue

                consecutive_failures = 0
                frame_count += 1
                self._set_frame(frame)

                preview = streaming.draw_detections(
                    frame.copy(), streaming.get_detections(self.stream_id)
                )
                streaming.set_frame(preview, stream_id=self.stream_id)

                # ~30 FPS
                self._stop_flag.wait(0.03)
        finally:
            if video_capture is not None:
                video_capture.release()
            logger.info('Camera released')

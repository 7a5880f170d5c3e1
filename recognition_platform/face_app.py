"""
InsightFace initialization module.

Provides face detection and embedding using InsightFace models.
"""

import threading
from typing import Any, Callable, List, Optional

import numpy as np

from .config import Config
from .errors import ModelsNotLoaded
from .logging_config import get_logger
from .recognition.types import FaceObservation, Region

logger = get_logger(__name__)


def initialize_face_app(config: Config) -> Any:
    """
    Initialize InsightFace FaceAnalysis.

    Args:
        config: Service configuration

    Returns:
        Initialized FaceAnalysis instance
    """
    # Pulls in onnxruntime; keep it out of module import
    from insightface.app import FaceAnalysis

    logger.info(f'Initializing InsightFace AI ({config.insightface_model})...')

    face_app = FaceAnalysis(
        name=config.insightface_model,
        providers=['CPUExecutionProvider']
    )
    face_app.prepare(ctx_id=0, det_size=config.insightface_det_size)

    logger.info(f'✅ InsightFace initialized (det_size={config.insightface_det_size})')

    return face_app


class FaceEmbedder:
    """
    Detection/embedding capability used by recognition and registration.

    Models load lazily; until load() succeeds is_ready() is False and
    detect() raises ModelsNotLoaded.
    """

    def __init__(
        self,
        config: Config,
        factory: Optional[Callable[[Config], Any]] = None
    ):
        """
        Initialize embedder.

        Args:
            config: Service configuration
            factory: Builds the face analysis app (defaults to InsightFace)
        """
        self.config = config
        self._factory = factory or initialize_face_app
        self._face_app: Optional[Any] = None
        self._load_error: Optional[Exception] = None
        self._load_lock = threading.Lock()

    @property
    def load_error(self) -> Optional[Exception]:
        """Error from the last failed load attempt, if any."""
        return self._load_error

    def is_ready(self) -> bool:
        return self._face_app is not None

    def load(self) -> None:
        """
        Load the face models.

        Raises:
            ModelsNotLoaded: If the models cannot be initialized
        """
        with self._load_lock:
            if self._face_app is not None:
                return

            try:
                face_app = self._factory(self.config)
            except Exception as e:
                self._load_error = e
                logger.error(f'Failed to initialize face models: {e}')
                raise ModelsNotLoaded(str(e)) from e

            self._face_app = face_app
            self._load_error = None

    def load_in_background(self) -> threading.Thread:
        """Load the models on a daemon thread so the HTTP server can start."""
        def _load():
            try:
                self.load()
            except ModelsNotLoaded:
                pass  # already logged, kept in load_error

        thread = threading.Thread(target=_load, daemon=True, name='FaceModelLoader')
        thread.start()
        return thread

    def detect(self, frame: np.ndarray) -> List[FaceObservation]:
        """
        Detect all faces in a frame.

        Args:
            frame: BGR image

        Returns:
            One observation (region + embedding) per detected face

        Raises:
            ModelsNotLoaded: If load() has not succeeded
        """
        face_app = self._face_app
        if face_app is None:
            raise ModelsNotLoaded('Face recognition models are not loaded')

        faces = face_app.get(frame)

        return [
            FaceObservation(
                region=Region.from_bbox(face.bbox),
                embedding=np.asarray(face.normed_embedding, dtype=np.float32)
            )
            for face in faces
            if getattr(face, 'normed_embedding', None) is not None
        ]

    def embed_largest_face(self, image: np.ndarray) -> Optional[FaceObservation]:
        """
        Extract the embedding of the largest face in a still image.

        Args:
            image: BGR image

        Returns:
            Observation for the largest face, or None if no face was found
        """
        observations = self.detect(image)
        if not observations:
            return None
        return max(observations, key=lambda obs: obs.region.area)

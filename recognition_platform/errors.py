"""
Error types for Face Recognition Platform.

Only AlreadyRunning and ModelsNotLoaded escape RecognitionController.start();
the transient tick conditions are handled inside the tick.
"""


class RecognitionPlatformError(Exception):
    """Base class for all platform errors."""


class AlreadyRunning(RecognitionPlatformError):
    """start() was called while recognition is already sampling."""


class ModelsNotLoaded(RecognitionPlatformError):
    """The face detection/embedding models are not (yet) available."""


class FrameUnavailable(RecognitionPlatformError):
    """The video source has no current frame."""


class DetectionCallFailed(RecognitionPlatformError):
    """The detection/embedding call raised or timed out."""


class EmptyKnownSet(RecognitionPlatformError):
    """There are no known identities to match against."""


class EmbeddingFormatError(RecognitionPlatformError, ValueError):
    """A stored embedding could not be decoded or failed validation."""


class EmbeddingDimensionError(EmbeddingFormatError):
    """Two embeddings being compared have different lengths."""


class StoreError(RecognitionPlatformError):
    """The hosted backend rejected a request or could not be reached."""


class ChatError(RecognitionPlatformError):
    """The chat answer could not be produced."""

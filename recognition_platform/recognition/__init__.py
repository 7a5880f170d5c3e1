"""
Recognition package.

Contains modules for:
- Recognition value types
- Embedding matching
- The live recognition loop controller
"""

from .types import (
    UNKNOWN_NAME,
    ControllerState,
    Detection,
    FaceObservation,
    KnownIdentity,
    Region,
)
from .matching import distance_to_confidence, euclidean_distance, match_embedding
from .controller import RecognitionController

__all__ = [
    'UNKNOWN_NAME',
    'ControllerState',
    'Detection',
    'FaceObservation',
    'KnownIdentity',
    'Region',
    'distance_to_confidence',
    'euclidean_distance',
    'match_embedding',
    'RecognitionController',
]

"""
Value types shared by the recognition loop and its collaborators.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

import numpy as np


UNKNOWN_NAME = 'Unknown'


class ControllerState(Enum):
    """Recognition loop state."""

    IDLE = 'idle'
    SAMPLING = 'sampling'


@dataclass(frozen=True)
class Region:
    """Face bounding region in frame-pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_bbox(cls, bbox) -> 'Region':
        """
        Build a region from an [x1, y1, x2, y2] bounding box.

        Args:
            bbox: Sequence or array of corner coordinates

        Returns:
            Region with non-negative width and height
        """
        x1, y1, x2, y2 = (float(v) for v in bbox)
        return cls(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))

    @property
    def area(self) -> float:
        return self.width * self.height

    def corners(self):
        """Integer (x1, y1, x2, y2) for drawing."""
        return (
            int(self.x),
            int(self.y),
            int(self.x + self.width),
            int(self.y + self.height),
        )


@dataclass(frozen=True, eq=False)
class KnownIdentity:
    """
    A registered person.

    The name is not guaranteed unique. The embedding array is made
    read-only so a snapshot cannot be mutated after it is fetched.
    """

    name: str
    embedding: np.ndarray = field(repr=False)

    def __post_init__(self):
        embedding = np.array(self.embedding, dtype=np.float32).ravel()
        embedding.setflags(write=False)
        object.__setattr__(self, 'embedding', embedding)


@dataclass(frozen=True, eq=False)
class FaceObservation:
    """A face found in a frame by the embedding capability."""

    region: Region
    embedding: np.ndarray = field(repr=False)


@dataclass(frozen=True)
class Detection:
    """A published recognition result for a single face."""

    name: str
    confidence: float
    region: Region

    @property
    def is_known(self) -> bool:
        return self.name != UNKNOWN_NAME

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'confidence': round(self.confidence, 4),
            'x': self.region.x,
            'y': self.region.y,
            'width': self.region.width,
            'height': self.region.height,
        }

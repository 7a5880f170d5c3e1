"""Test doubles for the recognition loop collaborators."""

import threading
from typing import List, Optional

import numpy as np

from recognition_platform.config import Config
from recognition_platform.errors import ModelsNotLoaded
from recognition_platform.recognition.types import FaceObservation, KnownIdentity, Region

DIM = 4


def make_config(**overrides) -> Config:
    values = dict(
        supabase_url='http://supabase.test',
        supabase_key='test-key',
        request_timeout=5.0,
        camera_source='0',
        camera_id='test-cam',
        service_name='test',
        http_port=5001,
        sampling_interval_seconds=60.0,
        match_threshold=0.6,
        detection_timeout_seconds=None,
        report_unknown_faces=False,
        embedding_dim=DIM,
        insightface_model='buffalo_l',
        insightface_det_size=(640, 640),
        chat_mode='canned',
        openai_api_key='sk-test',
        openai_base_url='https://llm.test/v1',
        openai_model='gpt-4o-mini',
        llm_temperature=0.3,
        llm_max_tokens=300,
        reload_known_interval=0,
        debug_mode=False,
    )
    values.update(overrides)
    return Config(**values)


def vec(*values) -> np.ndarray:
    return np.array(values, dtype=np.float32)


def identity(name: str, *values) -> KnownIdentity:
    return KnownIdentity(name=name, embedding=vec(*values))


def face(*values, region: Optional[Region] = None) -> FaceObservation:
    return FaceObservation(region=region or Region(10, 20, 100, 120), embedding=vec(*values))


class FakeFrameSource:
    """Returns a fixed frame, or None when frame is cleared."""

    def __init__(self):
        self.frame: Optional[np.ndarray] = np.zeros((48, 64, 3), dtype=np.uint8)

    def current_frame(self):
        return None if self.frame is None else self.frame.copy()


class FakeEmbedder:
    """
    Scripted detection capability.

    detect() returns `faces`, raises `error`, or blocks on `gate` until
    the test releases it.
    """

    def __init__(self, faces: Optional[List[FaceObservation]] = None, ready: bool = True):
        self.faces = list(faces or [])
        self.ready = ready
        self.error: Optional[Exception] = None
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.calls = 0
        self.load_error = None
        self._calls_lock = threading.Lock()

    def is_ready(self) -> bool:
        return self.ready

    def detect(self, frame):
        if not self.ready:
            raise ModelsNotLoaded('not ready')
        with self._calls_lock:
            self.calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.faces)

    def embed_largest_face(self, image):
        observations = self.detect(image)
        if not observations:
            return None
        return max(observations, key=lambda obs: obs.region.area)

"""
Configuration module for Face Recognition Platform.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization.
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


CHAT_MODES = ('llm', 'canned')


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for Face Recognition Platform.

    Backend Integration:
        supabase_url: Base URL of the Supabase project (e.g., https://xyz.supabase.co)
        supabase_key: Anon/service key sent as apikey and bearer token
        request_timeout: Timeout in seconds for backend and LLM requests

    Camera Settings:
        camera_source: Camera source - can be:
            - Integer (0, 1, 2) for local webcam
            - RTSP URL: rtsp://user:pass@ip:port/path
            - HTTP URL: http://camera-gateway:4000/streams/1.mjpg
        camera_id: Logical identifier for this camera (for logging/monitoring)

    Service Identity:
        service_name: Name of this service instance
        http_port: Port for Flask HTTP server

    Recognition:
        sampling_interval_seconds: Seconds between recognition ticks
        match_threshold: Minimum confidence (exclusive) to accept a match
        detection_timeout_seconds: Bound on a single detection call
            (defaults to one sampling interval)
        report_unknown_faces: Publish sub-threshold faces as "Unknown"
            instead of dropping them
        embedding_dim: Length of the embeddings produced by the model
        insightface_model: InsightFace model pack name
        insightface_det_size: Detection size for InsightFace (width, height)

    Chat:
        chat_mode: 'llm' to forward questions to the LLM, 'canned' for
            local pattern matching
        openai_api_key: API key for the chat completions endpoint
        openai_base_url: Base URL of an OpenAI-compatible API
        openai_model: Chat model name
        llm_temperature: Sampling temperature
        llm_max_tokens: Maximum tokens in the answer

    System:
        reload_known_interval: Seconds between known-face snapshot reloads
        debug_mode: Enable debug logging
    """

    # Backend
    supabase_url: str
    supabase_key: str
    request_timeout: float

    # Camera
    camera_source: str
    camera_id: str

    # Service
    service_name: str
    http_port: int

    # Recognition
    sampling_interval_seconds: float
    match_threshold: float
    detection_timeout_seconds: Optional[float]
    report_unknown_faces: bool
    embedding_dim: int
    insightface_model: str
    insightface_det_size: Tuple[int, int]

    # Chat
    chat_mode: str
    openai_api_key: Optional[str]
    openai_base_url: str
    openai_model: str
    llm_temperature: float
    llm_max_tokens: int

    # System
    reload_known_interval: int
    debug_mode: bool

    def __post_init__(self):
        if self.sampling_interval_seconds <= 0:
            raise ValueError('sampling_interval_seconds must be positive')
        if not 0.0 <= self.match_threshold < 1.0:
            raise ValueError('match_threshold must be in [0, 1)')
        if self.embedding_dim <= 0:
            raise ValueError('embedding_dim must be positive')
        if self.detection_timeout_seconds is not None and self.detection_timeout_seconds <= 0:
            raise ValueError('detection_timeout_seconds must be positive')
        if self.request_timeout <= 0:
            raise ValueError('request_timeout must be positive')
        if self.reload_known_interval < 0:
            raise ValueError('reload_known_interval must not be negative')
        if self.chat_mode not in CHAT_MODES:
            raise ValueError(f'chat_mode must be one of {CHAT_MODES}, got {self.chat_mode!r}')

    @property
    def effective_detection_timeout(self) -> float:
        """Detection call timeout, falling back to one sampling interval."""
        if self.detection_timeout_seconds is None:
            return self.sampling_interval_seconds
        return self.detection_timeout_seconds


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object

    Raises:
        ValueError: If a numeric variable cannot be parsed or is out of range
    """
    camera_source_raw = os.getenv('CAMERA_SOURCE', '0')
    detection_timeout_raw = os.getenv('DETECTION_TIMEOUT')

    return Config(
        # Backend
        supabase_url=os.getenv('SUPABASE_URL', 'http://localhost:54321').rstrip('/'),
        supabase_key=os.getenv('SUPABASE_KEY', os.getenv('SUPABASE_ANON_KEY', '')),
        request_timeout=float(os.getenv('REQUEST_TIMEOUT', '10')),

        # Camera
        camera_source=camera_source_raw,
        camera_id=os.getenv('CAMERA_ID', camera_source_raw),

        # Service
        service_name=os.getenv('SERVICE_NAME', 'face-recognition-platform'),
        http_port=int(os.getenv('HTTP_PORT', '5001')),

        # Recognition
        sampling_interval_seconds=float(os.getenv('SAMPLING_INTERVAL', '1.0')),
        match_threshold=float(os.getenv('MATCH_THRESHOLD', '0.6')),
        detection_timeout_seconds=(
            float(detection_timeout_raw) if detection_timeout_raw else None
        ),
        report_unknown_faces=_env_bool('REPORT_UNKNOWN_FACES', 'false'),
        embedding_dim=int(os.getenv('EMBEDDING_DIM', '512')),
        insightface_model=os.getenv('INSIGHTFACE_MODEL', 'buffalo_l'),
        insightface_det_size=(640, 640),

        # Chat
        chat_mode=os.getenv('CHAT_MODE', 'llm').strip().lower(),
        openai_api_key=os.getenv('OPENAI_API_KEY') or None,
        openai_base_url=os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1').rstrip('/'),
        openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
        llm_temperature=float(os.getenv('LLM_TEMPERATURE', '0.3')),
        llm_max_tokens=int(os.getenv('LLM_MAX_TOKENS', '300')),

        # System
        reload_known_interval=int(os.getenv('RELOAD_INTERVAL', '300')),
        debug_mode=_env_bool('DEBUG', 'false'),
    )

"""
Flask application for HTTP API.

Provides:
- GET /video_feed: MJPEG preview stream with recognition overlays
- GET /health: Service health check
- GET /api/recognition: Recognition state and current detections
- POST /api/recognition/start, /api/recognition/stop
- GET, POST /api/registrations: List and register faces
- POST /api/chat: Questions about registered faces
"""

import base64
import binascii
import time
from typing import Any, Optional

import cv2
import numpy as np
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import streaming
from .backend import SupabaseBackend
from .chat.service import ChatService
from .config import Config
from .errors import (
    AlreadyRunning,
    ChatError,
    EmbeddingFormatError,
    ModelsNotLoaded,
    StoreError,
)
from .logging_config import get_logger
from .recognition.controller import RecognitionController
from .registrations import fetch_registrations, register_face, validate_name
from .utils.timing import format_uptime

logger = get_logger(__name__)


def decode_image(data: Any) -> Optional[np.ndarray]:
    """
    Decode an uploaded image.

    Args:
        data: Raw bytes, base64 text or a data URL (data:image/jpeg;base64,...)

    Returns:
        BGR image or None if the data is not a decodable image
    """
    if isinstance(data, str):
        text = data.strip()
        if text.startswith('data:'):
            _, _, text = text.partition(',')
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            return None

    if not data:
        return None

    image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    return image


def _error(message: str, status: int, **extra) -> Response:
    payload = {'error': message}
    payload.update(extra)
    response = jsonify(payload)
    response.status_code = status
    return response


def _json_object() -> dict:
    """Request JSON body, or an empty dict when it is missing or not an object."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def create_app(
    config: Config,
    controller: RecognitionController,
    embedder: Any,
    backend: SupabaseBackend,
    chat_service: ChatService,
    stream_id: Optional[str] = None
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Service configuration
        controller: Live recognition controller
        embedder: Face detection/embedding capability
        backend: Hosted backend client
        chat_service: Chat answering service
        stream_id: Preview stream identifier

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    stream_id = stream_id or config.camera_id or streaming.DEFAULT_STREAM_ID
    started_at = time.time()

    def recognition_status() -> dict:
        detections = controller.detections
        return {
            'state': controller.state.value,
            'modelsLoaded': embedder.is_ready(),
            'registeredFaces': len(controller.known_identities),
            'detectedFaces': len(detections),
            'detections': [d.to_dict() for d in detections],
        }

    @app.route('/video_feed')
    def video_feed():
        """Stream MJPEG video feed."""
        return Response(
            streaming.generate_mjpeg_frames(stream_id=stream_id),
            mimetype='multipart/x-mixed-replace; boundary=frame'
        )

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'ok',
            'service': config.service_name,
            'cameraId': config.camera_id,
            'streaming': streaming.is_streaming(stream_id=stream_id),
            'modelsLoaded': embedder.is_ready(),
            'recognition': controller.state.value,
            'registeredFaces': len(controller.known_identities),
            'uptime': format_uptime(time.time() - started_at),
        })

    @app.route('/api/recognition', methods=['GET'])
    def get_recognition():
        return jsonify(recognition_status())

    @app.route('/api/recognition/start', methods=['POST'])
    def start_recognition():
        try:
            controller.start()
        except AlreadyRunning:
            return jsonify(dict(recognition_status(), alreadyRunning=True))
        except ModelsNotLoaded as e:
            return _error('Face recognition models are not loaded', 503, details=str(e))
        return jsonify(recognition_status())

    @app.route('/api/recognition/stop', methods=['POST'])
    def stop_recognition():
        controller.stop()
        return jsonify(recognition_status())

    @app.route('/api/registrations', methods=['GET'])
    def list_registrations():
        try:
            registrations = fetch_registrations(backend)
        except StoreError as e:
            return _error('Failed to load registrations', 502, details=str(e))
        return jsonify({
            'count': len(registrations),
            'registrations': [r.to_dict() for r in registrations],
        })

    @app.route('/api/registrations', methods=['POST'])
    def create_registration():
        if request.files.get('image') is not None:
            name = request.form.get('name')
            image_data: Any = request.files['image'].read()
        else:
            body = _json_object()
            name = body.get('name')
            image_data = body.get('image')

        try:
            name = validate_name(name)
        except ValueError as e:
            return _error(str(e), 400)

        if not image_data:
            return _error('Image is required', 400)

        image = decode_image(image_data)
        if image is None:
            return _error('Image could not be decoded', 400)

        try:
            observation = embedder.embed_largest_face(image)
        except ModelsNotLoaded as e:
            return _error('Face recognition models are not loaded', 503, details=str(e))

        if observation is None:
            return _error('No face found in image', 422)

        try:
            registration = register_face(backend, name, observation.embedding, config)
        except EmbeddingFormatError as e:
            return _error('Face embedding rejected', 422, details=str(e))
        except StoreError as e:
            return _error('Failed to register face', 502, details=str(e))

        controller.refresh_known_identities()

        response = jsonify({
            'message': f'{registration.name} has been registered successfully!',
            'registration': registration.to_dict(),
        })
        response.status_code = 201
        return response

    @app.route('/api/chat', methods=['POST'])
    def chat():
        body = _json_object()
        query = body.get('query')
        if not isinstance(query, str):
            return _error('Query is required', 400)

        try:
            answer = chat_service.answer(query)
        except ValueError as e:
            return _error(str(e), 400)
        except ChatError as e:
            logger.error(f'Error in chat request: {e}')
            return _error('Failed to process chat request', 500, details=str(e))

        return jsonify({'response': answer})

    return app

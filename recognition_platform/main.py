"""
Face Recognition Platform - Main Entry Point

Starts the camera reader, model loading, the live recognition controller
and the HTTP API.
"""

import argparse
import dataclasses
import functools
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import streaming
from .app import create_app
from .backend import SupabaseBackend
from .camera import FrameSource
from .chat.service import ChatService
from .config import CHAT_MODES, Config, load_config
from .errors import ModelsNotLoaded, StoreError
from .face_app import FaceEmbedder
from .logging_config import get_logger, setup_logging
from .recognition.controller import RecognitionController
from .registrations import load_known_identities
from .utils.timing import retry_with_backoff

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from .env next to the package if present."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Face Recognition Platform - live recognition and registered-face Q&A'
    )

    parser.add_argument(
        '--camera-source',
        type=str,
        help='Webcam index or stream URL (or set CAMERA_SOURCE)'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='HTTP port (or set HTTP_PORT)'
    )

    parser.add_argument(
        '--chat-mode',
        choices=CHAT_MODES,
        help='Answer chat questions with the LLM or canned rules (or set CHAT_MODE)'
    )

    parser.add_argument(
        '--autostart',
        action='store_true',
        help='Start live recognition as soon as the models are loaded'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return a config with command line values applied."""
    overrides = {}
    if args.camera_source is not None:
        overrides['camera_source'] = args.camera_source
        if not os.getenv('CAMERA_ID'):
            overrides['camera_id'] = args.camera_source
    if args.port is not None:
        overrides['http_port'] = args.port
    if args.chat_mode is not None:
        overrides['chat_mode'] = args.chat_mode
    if args.debug:
        overrides['debug_mode'] = True
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args(argv)

    try:
        config = apply_overrides(load_config(), args)
    except ValueError as e:
        print(f'Invalid configuration: {e}', file=sys.stderr)
        sys.exit(2)

    setup_logging(config.camera_id, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Face Recognition Platform')
    logger.info('=' * 60)
    logger.info(f'Backend: {config.supabase_url}')
    logger.info(f'Camera: {config.camera_source}')
    logger.info(f'Sampling interval: {config.sampling_interval_seconds}s, threshold: {config.match_threshold}')
    logger.info(f'Chat mode: {config.chat_mode}')
    logger.info('=' * 60)

    stream_id = config.camera_id or streaming.DEFAULT_STREAM_ID
    backend = SupabaseBackend(config)
    embedder = FaceEmbedder(config)
    frame_source = FrameSource(config, stream_id=stream_id)
    controller = RecognitionController(
        frame_source,
        embedder,
        config,
        sink=functools.partial(streaming.set_detections, stream_id=stream_id),
        known_loader=lambda: load_known_identities(backend, config),
    )

    loader_thread = embedder.load_in_background()

    try:
        controller.set_known_identities(retry_with_backoff(
            lambda: load_known_identities(backend, config),
            retry_on=(StoreError,)
        ))
    except StoreError as e:
        logger.warning(f'Registered faces unavailable at startup (will retry in background): {e}')

    frame_source.start()

    if args.autostart:
        loader_thread.join()
        try:
            controller.start()
        except ModelsNotLoaded as e:
            logger.error(f'Cannot autostart recognition: {e}')

    app = create_app(config, controller, embedder, backend, ChatService(backend, config), stream_id)
    logger.info(f'HTTP API: http://localhost:{config.http_port}/health')
    logger.info(f'Video stream: http://localhost:{config.http_port}/video_feed')

    try:
        app.run(
            host='0.0.0.0',
            port=config.http_port,
            threaded=True,
            debug=False,
            use_reloader=False
        )
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
    except Exception as e:
        logger.error(f'Fatal error: {e}', exc_info=True)
        sys.exit(1)
    finally:
        controller.shutdown()
        frame_source.stop()
        logger.info('Face Recognition Platform stopped')


if __name__ == '__main__':
    main()

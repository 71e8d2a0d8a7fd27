import os
import logging
from datetime import datetime
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Flask specific imports ---
from flask import Flask, request, g
from flask_cors import CORS

from config import Config
from trackshelf.core import BrokerPublisher, EventBroker
from trackshelf.database import db, initialize_database
from trackshelf.domain.library import FileStore, LibraryService
from trackshelf.domain.uploads import UploadLimits, UploadPipeline
from trackshelf.interfaces.http import register_error_handlers, request_handler_with_timeout
from trackshelf.interfaces.http.routes import (
    events_bp,
    health_bp,
    media_bp,
    playlists_bp,
    tracks_bp,
)
from trackshelf.observability import configure_structured_logging, metrics_blueprint, init_tracing


logger = logging.getLogger(__name__)


def configure_logging(log_dir: str) -> str:
    """
    Configure root logging with:
      - FileHandler (INFO+) to a new file per run: log-YYYY-MM-DD-HH-MM-SS
      - StreamHandler (WARNING+) to console when ENABLE_CONSOLE_LOGS is set
      - Werkzeug/Flask loggers routed to root (no extra console spam)

    Returns the path to the created log file.
    """
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    log_filename = f"log-{timestamp}"
    log_path = os.path.join(log_dir, log_filename)

    root = logging.getLogger()
    root.setLevel(logging.INFO)

    # Preserve structured handlers; remove existing FileHandlers to avoid duplicates
    root.handlers = [h for h in root.handlers if not isinstance(h, logging.FileHandler)]

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Looked up at call time so a reloaded config module is honoured
    from config import Config as _Cfg
    if _Cfg.ENABLE_CONSOLE_LOGS:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    # Quiet Flask/Werkzeug own console handlers; let them propagate to root
    for name in ("werkzeug", "flask.app"):
        _l = logging.getLogger(name)
        _l.setLevel(logging.INFO)
        _l.handlers = []
        _l.propagate = True

    return log_path


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_structured_logging(app)
    init_tracing(app)

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get('X-Request-ID') or uuid4().hex

    @app.after_request
    def _inject_request_id(response):
        if getattr(g, 'request_id', None):
            response.headers.setdefault('X-Request-ID', g.request_id)
        return response

    allowed_origins = sorted({
        origin.strip()
        for origin in app.config['CORS_ALLOWED_ORIGINS']
        if origin and origin.strip()
    })
    CORS(
        app,
        resources={r"/api/*": {"origins": allowed_origins}},
        expose_headers=["X-Request-ID"],
    )

    # Initialize database (creates missing tables)
    initialize_database(app)

    app.extensions['event_broker'] = EventBroker()
    publisher = BrokerPublisher(app.extensions['event_broker'])

    file_store = FileStore(app.config['UPLOAD_DIR'])
    stale_after = int(app.config.get('STALE_PARTIAL_UPLOAD_SECONDS', 3600))
    if stale_after > 0:
        file_store.cleanup_partial_uploads(stale_after)
    app.extensions['file_store'] = file_store

    library_service = LibraryService(db, file_store, publisher=publisher)
    app.extensions['library_service'] = library_service
    app.extensions['upload_pipeline'] = UploadPipeline(
        file_store,
        library_service,
        UploadLimits.from_config(app.config),
    )

    register_error_handlers(app)

    # --- Register Blueprints ---
    app.register_blueprint(playlists_bp)
    app.register_blueprint(tracks_bp)
    app.register_blueprint(media_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(metrics_blueprint)
    app.register_blueprint(health_bp)

    app.logger.info("Upload root: %s", file_store.upload_root)
    return app


if __name__ == '__main__':
    # Configure logging:
    # - In debug with reloader: only in the child process to avoid duplicate files
    # - In non-debug: always configure here
    debug_mode = bool(Config.DEBUG)
    if debug_mode:
        if os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
            log_file_path = configure_logging(Config.LOG_DIR)
            logger.info("File logging initialized at %s", log_file_path)
    else:
        log_file_path = configure_logging(Config.LOG_DIR)
        logger.info("File logging initialized at %s", log_file_path)

    app = create_app()
    # Route app.logger through root handlers, keep levels consistent
    app.logger.handlers = []
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = True
    logger.info("Starting Flask application on port %s...", Config.PORT)
    # Threaded so uploads, listings and the SSE stream are served concurrently;
    # socket reads time out so a stalled upload cannot hold a worker forever
    app.run(
        debug=Config.DEBUG,
        host='0.0.0.0',
        port=Config.PORT,
        threaded=True,
        request_handler=request_handler_with_timeout(Config.UPLOAD_REQUEST_TIMEOUT_SECONDS),
    )

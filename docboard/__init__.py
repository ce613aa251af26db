"""
docboard application factory
"""
import os
import random
from datetime import datetime, timezone

from flask import Flask, current_app, jsonify
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

from docboard.config import get_config

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

EXTENSION_KEY = 'docboard'


def init_services(app, byte_store=None, page_source=None, rng=None):
    """
    Build the document pipeline once per app and keep it on app.extensions.

    Collaborators default to what the config describes; tests pass their own.
    """
    from docboard.lifecycle import DocumentLifecycleCoordinator
    from docboard.services.aws_service import make_byte_store
    from docboard.services.document_store import DocumentStore
    from docboard.services.pdf_service import make_page_source

    if rng is None:
        seed = app.config.get('EXTRACTION_SEED')
        rng = random.Random(seed) if seed is not None else random.Random()

    coordinator = DocumentLifecycleCoordinator(
        store=DocumentStore(db.session),
        byte_store=byte_store or make_byte_store(app.config),
        page_source=page_source or make_page_source(app.config.get('PAGE_TEXT_BACKEND')),
        rng=rng,
        max_upload_bytes=app.config.get('MAX_UPLOAD_BYTES'),
    )
    app.extensions[EXTENSION_KEY] = coordinator
    return coordinator


def get_coordinator():
    return current_app.extensions[EXTENSION_KEY]


def create_app(config_name=None):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    from docboard import models  # noqa: F401  (register tables)
    from docboard.api import api_bp
    from docboard.errors import register_error_handlers

    app.register_blueprint(api_bp)

    # Exempt API routes from CSRF (JS doesn't send tokens)
    csrf.exempt(api_bp)
    register_error_handlers(app)

    @app.route('/healthz')
    def healthz():
        """Health check for load balancers and monitoring"""
        try:
            from sqlalchemy import text
            db.session.execute(text('SELECT 1'))
            db_status = "ok"
        except Exception as e:
            db_status = f"error: {e}"

        return jsonify({
            "status": "ok" if db_status == "ok" else "degraded",
            "version": app.config['APP_VERSION'],
            "database": db_status,
            "storage": getattr(get_coordinator().byte_store, 'name', 'custom'),
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    @app.route('/version')
    def version():
        """Version and build info"""
        return jsonify({
            "version": app.config['APP_VERSION'],
            "build_time": app.config['BUILD_TIME'],
            "git_commit": app.config['GIT_COMMIT'],
            "features": {
                "slots": 9,
                "page_text_backend": app.config.get('PAGE_TEXT_BACKEND'),
                "signed_uploads": True,
            }
        })

    with app.app_context():
        if os.getenv('RESET_DB', '').strip() in ('1', 'true', 'yes'):
            app.logger.warning('RESET_DB is set - dropping all tables...')
            db.drop_all()
        db.create_all()

    init_services(app)
    return app

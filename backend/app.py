import os
import logging
from flask import Flask, request, jsonify
from flask_login import LoginManager
from flask_cors import CORS
from sqlalchemy import text

# Import configuration with proper instantiation
from config import config, get_config_name

# Import database and models
from models import db, User
from services.builder_workflow import BuilderSessionRegistry

BLUEPRINT_IMPORTS = [
    ('routes.auth', 'auth_bp', '/api/auth'),
    ('routes.estimates', 'estimates_bp', '/api/estimates'),
    ('routes.invoices', 'invoices_bp', '/api/invoices'),
    ('routes.catalog', 'catalog_bp', '/api/catalog'),
    ('routes.builder', 'builder_bp', '/api/builder'),
    ('routes.health', 'health_bp', '/api'),
]


def create_app(config_name=None):
    """
    Application factory for the FieldFlow Billing API
    """
    # Auto-detect environment if not specified
    if config_name is None:
        config_name = get_config_name()

    app = Flask(__name__)

    # Configuration classes resolve the database URL in __init__
    try:
        config_instance = config[config_name]()
        app.config.from_object(config_instance)
        app.logger.info(f"Configuration loaded for {config_name} environment")
    except Exception as config_error:
        app.logger.error(f"Configuration loading failed: {config_error}")
        raise

    # Ensure instance folder exists for SQLite
    try:
        os.makedirs(app.instance_path, exist_ok=True)
        os.makedirs(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'instance'), exist_ok=True)
    except OSError as e:
        app.logger.warning(f"Could not create instance directory: {e}")

    db.init_app(app)

    CORS(app,
         origins=app.config.get('CORS_ORIGINS', []),
         supports_credentials=app.config.get('CORS_SUPPORTS_CREDENTIALS', True),
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS', 'PATCH'],
         allow_headers=['Content-Type', 'Authorization', 'X-Requested-With', 'Accept', 'Origin'],
         expose_headers=['Content-Type', 'Authorization'],
         max_age=86400)

    # Flask-Login with JSON responses instead of redirects
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.session_protection = 'strong'

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        """Return JSON for unauthorized access instead of redirecting"""
        app.logger.warning(f"Unauthorized access attempt to {request.path} from {request.remote_addr}")
        return jsonify({
            'error': 'Authentication required',
            'message': 'You must be logged in to access this endpoint',
            'code': 'UNAUTHORIZED'
        }), 401

    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login"""
        try:
            return db.session.get(User, int(user_id))
        except (ValueError, TypeError) as e:
            app.logger.warning(f"Invalid user_id provided to user_loader: {user_id} - {e}")
            return None

    # Configure logging based on environment
    if not app.debug and config_name == 'production':
        logging.basicConfig(level=logging.INFO)
        app.logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        app.logger.addHandler(handler)
    elif app.debug:
        app.logger.setLevel(logging.DEBUG)
    else:
        app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Open builder workflows, expired after BUILDER_SESSION_IDLE_MINUTES without activity
    app.extensions['builder_sessions'] = BuilderSessionRegistry(
        idle_timeout=app.config.get('BUILDER_SESSION_IDLE_MINUTES', 60) * 60
    )

    registered_blueprints = []
    for module_name, blueprint_name, url_prefix in BLUEPRINT_IMPORTS:
        try:
            module = __import__(module_name, fromlist=[blueprint_name])
            blueprint = getattr(module, blueprint_name)
            app.register_blueprint(blueprint, url_prefix=url_prefix)
            registered_blueprints.append(blueprint_name)
            app.logger.debug(f"Registered {blueprint_name} blueprint at {url_prefix}")
        except (ImportError, AttributeError) as e:
            app.logger.error(f"Failed to register {blueprint_name} from {module_name}: {e}")
            # In development and tests, crash to force fixing the issue
            if config_name != 'production':
                raise

    @app.route('/')
    def index():
        """Root endpoint with API information"""
        return jsonify({
            'message': 'FieldFlow Billing API',
            'status': 'running',
            'version': '1.0.0',
            'environment': config_name,
            'endpoints': {
                'health': '/api/health',
                'auth': '/api/auth',
                'estimates': '/api/estimates',
                'invoices': '/api/invoices',
                'catalog': '/api/catalog',
                'builder': '/api/builder',
            },
            'registered_blueprints': registered_blueprints,
        })

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'Not Found',
            'message': f'The requested endpoint {request.path} does not exist',
            'code': 'NOT_FOUND'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'Method Not Allowed',
            'message': f'The method {request.method} is not allowed for endpoint {request.path}',
            'code': 'METHOD_NOT_ALLOWED',
            'allowed_methods': list(error.valid_methods) if getattr(error, 'valid_methods', None) else None
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        """500 handler with database rollback"""
        db.session.rollback()
        app.logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred. Please try again later.',
            'code': 'INTERNAL_ERROR'
        }), 500

    with app.app_context():
        try:
            db.session.execute(text('SELECT 1'))
            db.create_all()
            app.logger.info("Database tables created/verified successfully")
        except Exception as db_error:
            app.logger.error(f"Database initialization error: {db_error}")
            if config_name == 'production':
                app.logger.error("Production database error - app will start but may not function properly")
            else:
                # In development, crash to force fixing the issue
                raise

    app.logger.info(f"FieldFlow Billing API created ({config_name}, {len(registered_blueprints)} blueprints)")
    return app


if __name__ == '__main__':
    # For local development - auto-detect environment
    local_app = create_app()
    port = int(os.environ.get('PORT', 5000))
    local_app.run(
        debug=local_app.config.get('DEBUG', False),
        host='0.0.0.0',
        port=port
    )

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from datetime import datetime
from models import db

health_bp = Blueprint('health', __name__)

APP_NAME = 'FieldFlow Billing API'
CRITICAL_BLUEPRINTS = ['auth', 'estimates', 'invoices', 'builder']


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint to verify service status
    Tests database connectivity, configuration and registered blueprints
    """
    health_status = {
        'status': 'healthy',
        'app': APP_NAME,
        'version': '1.0.0',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'checks': {}
    }
    overall_healthy = True
    status_code = 200

    # Test 1: Database Connection
    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()

        db_url = current_app.config.get('SQLALCHEMY_DATABASE_URI', '')
        if 'sqlite' in db_url.lower():
            db_type = 'SQLite'
        elif 'postgresql' in db_url.lower():
            db_type = 'PostgreSQL'
        else:
            db_type = 'Unknown'

        health_status['checks']['database'] = {
            'status': 'healthy',
            'type': db_type,
            'connected': True
        }
    except Exception as db_error:
        db.session.rollback()
        current_app.logger.error(f"Database health check failed: {db_error}")
        health_status['checks']['database'] = {
            'status': 'unhealthy',
            'connected': False,
            'error': str(db_error)
        }
        overall_healthy = False

    # Test 2: Billing configuration
    config_issues = []
    for setting in ('DEFAULT_TAX_RATE', 'WARRANTY_MATCH_TERMS'):
        if current_app.config.get(setting) in (None, '', []):
            config_issues.append(f'Missing {setting}')
    health_status['checks']['configuration'] = {
        'status': 'healthy' if not config_issues else 'warning',
        'issues': config_issues,
        'default_tax_rate': str(current_app.config.get('DEFAULT_TAX_RATE')),
        'cors_configured': bool(current_app.config.get('CORS_ORIGINS'))
    }
    if config_issues:
        current_app.logger.warning(f"Configuration issues detected: {config_issues}")

    # Test 3: Application State
    registered_blueprints = list(current_app.blueprints.keys())
    missing_blueprints = [bp for bp in CRITICAL_BLUEPRINTS if bp not in registered_blueprints]
    health_status['checks']['application'] = {
        'status': 'healthy' if not missing_blueprints else 'warning',
        'blueprints': {
            'registered': registered_blueprints,
            'missing_critical': missing_blueprints,
        },
        'open_builder_sessions': len(current_app.extensions.get('builder_sessions', ())),
    }
    if missing_blueprints:
        current_app.logger.warning(f"Missing critical blueprints: {missing_blueprints}")

    if not overall_healthy:
        health_status['status'] = 'unhealthy'
        status_code = 503
    elif any(check.get('status') == 'warning' for check in health_status['checks'].values()):
        health_status['status'] = 'degraded'

    current_app.logger.info(f"Health check completed: {health_status['status']}")
    return jsonify(health_status), status_code


@health_bp.route('/health/simple', methods=['GET'])
def simple_health_check():
    """
    Simple health check for basic monitoring
    Returns minimal response for load balancers
    """
    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()
        return jsonify({
            'status': 'healthy',
            'message': 'Service is running'
        }), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Simple health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'message': 'Database connection failed'
        }), 503

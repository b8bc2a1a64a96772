# backend/routes/auth.py
from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from datetime import datetime
from models import db, User
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def create_error_response(message, status_code=500):
    """Create a standardized error response"""
    return jsonify({
        'error': message,
        'timestamp': datetime.utcnow().isoformat()
    }), status_code


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log a user in and start a Flask-Login session"""
    try:
        data = request.get_json(silent=True)
        if not data:
            logger.warning("Login request with no JSON data")
            return create_error_response("No data provided", 400)

        username = (data.get('username') or '').strip()
        password = data.get('password') or ''

        if not username or not password:
            logger.warning("Login validation failed: missing username or password")
            return create_error_response("Username and password are required", 400)

        user = User.query.filter_by(username=username).first()
        if not user or not user.check_password(password):
            logger.warning(f"Login failed for username '{username}'")
            return create_error_response("Invalid username or password", 401)

        if not user.is_active:
            logger.warning(f"Login failed: User '{username}' is inactive")
            return create_error_response("Account is disabled", 401)

        try:
            user.last_login = datetime.utcnow()
            db.session.commit()
        except Exception as update_error:
            db.session.rollback()
            # A stale last_login is not worth failing the login over
            logger.error(f"Database error updating last login: {update_error}")

        login_user(user, remember=True)
        logger.info(f"Login successful for user '{username}' (ID: {user.id})")

        return jsonify({
            'message': 'Login successful',
            'user': user.to_dict(),
            'timestamp': datetime.utcnow().isoformat()
        }), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Unexpected login error: {e}")
        return create_error_response("Login failed due to server error", 500)


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """End the current session. Safe to call when already logged out."""
    username = current_user.username if current_user.is_authenticated else None
    logout_user()
    if username:
        logger.info(f"User '{username}' logged out")
    return jsonify({
        'message': 'Logout successful',
        'timestamp': datetime.utcnow().isoformat()
    }), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    """Get current user information"""
    return jsonify(current_user.to_dict()), 200

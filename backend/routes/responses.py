# backend/routes/responses.py
import logging

from flask import jsonify, request

from services.errors import BillingError
from services.persistence import CONVERTED, PARTIALLY_CONVERTED

logger = logging.getLogger(__name__)


def billing_error_response(error):
    """Turn an engine error into the API's JSON error shape."""
    status_code = getattr(error, 'status_code', 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.path} failed: {error}")
    else:
        logger.warning(f"{request.method} {request.path} rejected: {error}")
    return jsonify({
        'error': str(error),
        'code': getattr(error, 'code', BillingError.code),
    }), status_code


def conversion_response(result, **extra):
    """Map a ConversionResult to an HTTP response. Partial conversion is never a 2xx."""
    body = result.to_dict()
    body.update(extra)
    if result.outcome == CONVERTED:
        return jsonify(body), 201
    if result.outcome == PARTIALLY_CONVERTED:
        body['error'] = result.message
        body['code'] = 'PARTIAL_CONVERSION'
        return jsonify(body), 500
    body['error'] = result.message
    body['code'] = 'PERSISTENCE_FAILED'
    return jsonify(body), 500


def get_json_body():
    return request.get_json(silent=True) or {}

# backend/routes/catalog.py
from flask import Blueprint, request, jsonify
from flask_login import login_required
from services.catalog import list_products, warranty_products
import logging

catalog_bp = Blueprint('catalog', __name__)
logger = logging.getLogger(__name__)


@catalog_bp.route('/products', methods=['GET'])
@login_required
def get_products():
    """Active catalog products; ?warranty=1 returns only warranty products"""
    try:
        if request.args.get('warranty', '').lower() in ('1', 'true', 'yes'):
            products = warranty_products()
        else:
            products = list_products()
        return jsonify([product.to_dict() for product in products])
    except Exception as e:
        logger.error(f"Error retrieving products: {str(e)}")
        return jsonify({'error': 'Failed to retrieve products'}), 500

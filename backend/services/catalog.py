# backend/services/catalog.py
"""
Read-only access to catalog products.

Warranty products are recognized by a loose, configurable substring match
on name, tags and category (WARRANTY_MATCH_TERMS).
"""
import logging

from models import db, Product
from .errors import DocumentNotFoundError, ValidationError
from .settings import app_setting

logger = logging.getLogger(__name__)

DEFAULT_WARRANTY_TERMS = ('warranty',)


def warranty_terms():
    terms = app_setting('WARRANTY_MATCH_TERMS', DEFAULT_WARRANTY_TERMS) or DEFAULT_WARRANTY_TERMS
    return [term.lower() for term in terms if term]


def is_warranty_product(product, terms=None):
    """True if any term appears in the product's name, tags or category."""
    terms = warranty_terms() if terms is None else [term.lower() for term in terms]
    if isinstance(product, dict):
        name, tags, category = product.get('name'), product.get('tags'), product.get('category')
    else:
        name, tags, category = product.name, product.tags, product.category

    haystack = [name or '', category or ''] + list(tags or [])
    haystack = [text.lower() for text in haystack if text]
    return any(term in text for term in terms for text in haystack)


def list_products(active_only=True):
    query = Product.query
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name).all()


def get_product(product_id):
    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid product id: {product_id!r}")
    product = db.session.get(Product, product_id)
    if product is None:
        raise DocumentNotFoundError(f"Product {product_id} not found")
    return product


def warranty_products(terms=None):
    """Active catalog products offered in the builder's warranty step."""
    products = [product for product in list_products() if is_warranty_product(product, terms)]
    logger.debug(f"Found {len(products)} warranty products")
    return products

# backend/models/product.py

import json
from datetime import datetime

from .base import db


class Product(db.Model):
    """Catalog entry. The billing engine only reads these."""
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tags_data = db.Column(db.Text, nullable=True)  # JSON list of strings
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def tags(self):
        if not self.tags_data:
            return []
        try:
            tags = json.loads(self.tags_data)
        except json.JSONDecodeError:
            return []
        return [str(tag) for tag in tags] if isinstance(tags, list) else []

    @tags.setter
    def tags(self, value):
        self.tags_data = json.dumps(list(value or []))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'price': float(self.price or 0),
            'cost': float(self.cost or 0),
            'tags': self.tags,
        }

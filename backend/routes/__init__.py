"""
Routes package for the FieldFlow Billing API.

Each module exposes one Flask blueprint; app.create_app() imports and
registers them with their URL prefixes.
"""

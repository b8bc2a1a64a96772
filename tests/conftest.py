import pytest

from app import create_app
from models import db as _db, Product, User
from services.document_store import SqlDocumentStore
from services.line_items import LineItem

CATALOG = [
    # name, category, price, cost, tags
    ('Garage Door Opener', 'Openers', 50, 30, []),
    ('Torsion Spring Kit', 'Parts', 100, 60, []),
    ('Extended Warranty - 2 Year', 'Add-ons', 80, 10, []),
    ('Roller Care', 'Protection Plans', 40, 5, ['service']),
]


@pytest.fixture
def flask_app():
    """The application with no context pushed, so each request gets its own."""
    app = create_app('testing')
    yield app
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def app(flask_app):
    """The application with an app context pushed for calling services directly."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def store(app):
    return SqlDocumentStore()


def _make_user(flask_app, username, role, password='secret123'):
    with flask_app.app_context():
        user = User(username=username, email=f'{username}@example.com', role=role,
                    first_name=username.capitalize())
        user.set_password(password)
        _db.session.add(user)
        _db.session.commit()
    return username


def _login(client, username, password='secret123'):
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def office_user(flask_app):
    return _make_user(flask_app, 'olivia', 'office')


@pytest.fixture
def admin_user(flask_app):
    return _make_user(flask_app, 'adam', 'admin')


@pytest.fixture
def client(flask_app, office_user):
    return _login(flask_app.test_client(), office_user)


@pytest.fixture
def admin_client(flask_app, admin_user):
    return _login(flask_app.test_client(), admin_user)


def _seed_catalog():
    products = []
    for name, category, price, cost, tags in CATALOG:
        product = Product(name=name, category=category, price=price, cost=cost)
        product.tags = tags
        products.append(product)
    _db.session.add_all(products)
    _db.session.commit()
    return products


@pytest.fixture
def products(app):
    """Catalog products by name, for tests running inside an app context."""
    return {product.name: product for product in _seed_catalog()}


@pytest.fixture
def product_ids(flask_app):
    """Catalog product ids by name, for tests going through the HTTP API."""
    with flask_app.app_context():
        return {product.name: product.id for product in _seed_catalog()}


@pytest.fixture
def sample_items():
    """(qty 2 @ 50, taxable, cost 30) and (qty 1 @ 100, non-taxable, cost 60)."""
    return [
        LineItem(description='Opener', quantity=2, unit_price='50', our_price='30', taxable=True),
        LineItem(description='Springs', quantity=1, unit_price='100', our_price='60', taxable=False),
    ]

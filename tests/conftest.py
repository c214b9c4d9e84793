"""
Pytest configuration and fixtures for the booking service test suite
"""

import os
from datetime import datetime, timedelta
import pytest

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'SESSION_SECRET': 'test_secret_key_for_testing_only',
    'JWT_SECRET_KEY': 'test_jwt_secret_for_testing_only_0123456789',
    'DATABASE_URL': 'sqlite:///:memory:',
})

from flask_jwt_extended import create_access_token

from app import create_app, db
from tests.factories import (UserFactory, CleanerFactory, AdminUserFactory,
                             ServiceFactory, BookingFactory)


class FakeClock:
    """Controllable clock; tests move time forward explicitly."""

    def __init__(self, start):
        self.current = start

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, moment):
        self.current = moment
        return self.current


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'DB_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture
def clock():
    # Tuesday 10 March 2026, 09:00 business time
    return FakeClock(datetime(2026, 3, 10, 9, 0))


@pytest.fixture
def customer(db_session):
    return UserFactory()


@pytest.fixture
def cleaner(db_session):
    return CleanerFactory()


@pytest.fixture
def other_cleaner(db_session):
    return CleanerFactory()


@pytest.fixture
def admin(db_session):
    return AdminUserFactory()


@pytest.fixture
def service(db_session):
    return ServiceFactory(name='Home Cleaning', base_price=500, cleaner_payout=200)


@pytest.fixture
def booking(db_session, customer, service):
    return BookingFactory(customer=customer, service=service)


@pytest.fixture
def auth_headers(app):
    """Build an Authorization header for a user"""
    def _headers(user):
        token = create_access_token(identity=user.uuid)
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def booking_service(app, clock):
    from services.booking_service import BookingService
    return BookingService(clock=clock)


@pytest.fixture
def cleaner_caller(cleaner):
    from services.identity import CallerContext
    return CallerContext.for_user(cleaner.user)


@pytest.fixture
def other_cleaner_caller(other_cleaner):
    from services.identity import CallerContext
    return CallerContext.for_user(other_cleaner.user)


@pytest.fixture
def customer_caller(customer):
    from services.identity import CallerContext
    return CallerContext.for_user(customer)


@pytest.fixture
def admin_caller(admin):
    from services.identity import CallerContext
    return CallerContext.for_user(admin)


@pytest.fixture
def proof_file():
    """Build an uploaded image the way werkzeug hands it to a view"""
    import io
    from werkzeug.datastructures import FileStorage

    def _file(filename='proof.jpg', content=b'\xff\xd8\xff\xe0fake-jpeg-bytes'):
        return FileStorage(stream=io.BytesIO(content), filename=filename, content_type='image/jpeg')
    return _file

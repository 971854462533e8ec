import pytest
from decimal import Decimal
import uuid

from quotebuilder import create_app
from quotebuilder.database import Base, create_all, get_session
from quotebuilder.models import Organization, Product, Customer


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestConfig')
    create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


def _organization(session, label):
    suffix = str(uuid.uuid4())[:8]
    organization = Organization(
        slug=f'{label}-{suffix}',
        name=f'{label.title()} {suffix}',
        active=True
    )
    session.add(organization)
    session.commit()
    return organization


@pytest.fixture(scope='function')
def organization(session):
    """Create the organization most tests work in."""
    return _organization(session, 'acme')


@pytest.fixture(scope='function')
def other_organization(session):
    """Create a second organization for isolation tests."""
    return _organization(session, 'globex')


@pytest.fixture(scope='function')
def consulting_hour(session, organization):
    product = Product(
        organization_id=organization.id,
        name='Consulting hour',
        description='Senior consultant, billed per started hour',
        category='Services',
        unit_price=Decimal('1200.00'),
        unit='hour',
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def installation_kit(session, organization):
    product = Product(
        organization_id=organization.id,
        name='Installation kit',
        category='Hardware',
        unit_price=Decimal('450.00'),
        unit='piece',
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def retired_product(session, organization):
    product = Product(
        organization_id=organization.id,
        name='Legacy license',
        category='Software',
        unit_price=Decimal('99.00'),
        unit='piece',
        active=False
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def customer(session, organization):
    """Existing customer of the main organization."""
    customer = Customer(
        organization_id=organization.id,
        name='Anna Andersson',
        email='anna@example.com',
        company_name='Andersson Bygg AB',
        city='Uppsala'
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def org_client(client, organization):
    """Test client with the main organization selected."""
    # session_transaction tears down the app context, read the id first
    organization_id = organization.id
    with client.session_transaction() as sess:
        sess['organization_id'] = organization_id
    return client

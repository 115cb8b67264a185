import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agrimarket.auth.resolver import AuthenticationResolver
from agrimarket.auth.security import get_password_hash
from agrimarket.core.config import Settings
from agrimarket.db.init import init_db
from agrimarket.db.session import build_engine
from agrimarket.events.broker import EventBroker
from agrimarket.main import create_app
from agrimarket.models.produce import BuyerProduceStatus, FarmProduce, PreferredProduce
from agrimarket.models.profile import Admin, Buyer, Farmer
from agrimarket.models.user import Role, User
from agrimarket.services.workflow import ProduceRequestWorkflow

PASSWORD = "secret123"


@pytest.fixture
def settings():
    return Settings(
        SECRET_KEY="test-secret",
        SSE_HEARTBEAT_SECONDS=0.05,
        SSE_IDLE_TIMEOUT_SECONDS=0.2,
        SSE_QUEUE_SIZE=5,
        LEDGER_POOL_WORKERS=1,
        LEDGER_POOL_QUEUE=2,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def engine():
    """In-memory database shared by every session of one test."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(engine, session_factory):
    session = session_factory()
    init_db(engine, session)
    yield session
    session.close()


@pytest.fixture
def broker():
    return EventBroker(heartbeat_seconds=0.05, idle_timeout_seconds=0.2, queue_size=5)


@pytest.fixture
def workflow(broker):
    return ProduceRequestWorkflow(broker=broker)


@pytest.fixture
def resolver():
    return AuthenticationResolver()


@pytest.fixture
def app(settings, engine, session_factory, db):
    return create_app(settings, engine=engine, session_factory=session_factory)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


# --------------------------------------------------------------------
# Data helpers
# --------------------------------------------------------------------
def create_account(db, email, roles=(), phone_number=None, password=PASSWORD, full_name="Test User", is_active=True):
    user = User(
        email=email,
        phone_number=phone_number,
        full_name=full_name,
        hashed_password=get_password_hash(password),
        is_active=is_active,
    )
    for name in roles:
        user.roles.append(db.query(Role).filter(Role.name == name).one())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def farmer(db):
    user = create_account(db, "farmer@example.com", roles=["FARMER"], phone_number="0700000001", full_name="Jane Farmer")
    profile = Farmer(user=user, farm_name="Green Acres", farm_size=12.5)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def other_farmer(db):
    user = create_account(db, "farmer2@example.com", roles=["FARMER"], full_name="Otieno Farmer")
    profile = Farmer(user=user, farm_name="Hilltop")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def buyer(db):
    user = create_account(db, "buyer@example.com", roles=["BUYER"], full_name="John Buyer")
    profile = Buyer(user=user, company_name="Fresh Foods Ltd", business_type="Retail")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def other_buyer(db):
    user = create_account(db, "buyer2@example.com", roles=["BUYER"], full_name="Mary Buyer")
    profile = Buyer(user=user, company_name="Market Hub")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def admin(db):
    user = create_account(db, "admin@example.com", roles=["ADMIN"], full_name="Site Admin")
    profile = Admin(user=user, department="Operations")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def maize(db):
    produce = FarmProduce(name="Maize", description="White maize", farming_type="Crop")
    db.add(produce)
    db.commit()
    db.refresh(produce)
    return produce


@pytest.fixture
def preferred_maize(db, buyer, maize):
    preferred = PreferredProduce(buyer_id=buyer.id, farm_produce=maize, status=BuyerProduceStatus.ACTIVE)
    db.add(preferred)
    db.commit()
    db.refresh(preferred)
    return preferred


@pytest.fixture
def produce_request(db, workflow, buyer, preferred_maize):
    return workflow.request_a_produce(
        db,
        buyer_id=buyer.id,
        preferred_produce_id=preferred_maize.id,
        quantity=100,
        price=50,
        unit="kg",
    )


def login(client, identifier, role_type=None, password=PASSWORD):
    payload = {"email_or_phone": identifier, "password": password}
    if role_type is not None:
        payload["role_type"] = role_type
    return client.post("/auth/login", json=payload)


def auth_headers(client, identifier, role_type=None):
    response = login(client, identifier, role_type)
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}

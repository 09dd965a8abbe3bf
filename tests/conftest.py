import hashlib
import hmac
import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("POSTGRES_DB", "test")
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("REFRESH_SECRET_KEY", "test-refresh-secret-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import app.models  # noqa: F401
from app.constants.payment_status import MovieStatus
from app.database import get_session
from app.dependencies.services import get_media_store, get_payment_gateway
from app.main import app as fastapi_app
from app.models.movie import Movie
from app.models.user import User
from app.services import id_allocator
from app.services.exceptions import UpstreamGatewayError
from app.services.id_allocator import insert_with_id
from app.services.payment_gateway import RazorpayGateway, to_paise
from app.utils.hash import hash_password
from app.utils.token import create_access_token

KEY_ID = os.environ["RAZORPAY_KEY_ID"]
KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]


def sign(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return hmac.new(
        secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
    ).hexdigest()


class FakeGateway(RazorpayGateway):
    """Real signature checks, canned order and refund responses."""

    def __init__(self, allow_simulated: bool = False):
        super().__init__(KEY_ID, KEY_SECRET, allow_simulated=allow_simulated)
        self.orders = []
        self.refunds = []
        self.down = False

    def create_order(self, amount, currency, receipt, notes=None):
        if self.down:
            raise UpstreamGatewayError("gateway down")
        order = {
            "id": f"order_{len(self.orders) + 1:04d}",
            "entity": "order",
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        self.orders.append(order)
        return order

    def refund(self, payment_id, amount):
        if self.down:
            raise UpstreamGatewayError("gateway down")
        refund = {
            "id": f"rfnd_{len(self.refunds) + 1:04d}",
            "payment_id": payment_id,
            "amount": to_paise(amount),
        }
        self.refunds.append(refund)
        return refund


class FakeMediaStore:
    def __init__(self):
        self.uploaded = []
        self.deleted = []

    def upload_movie(self, file, title):
        key = f"movies/{title.lower().replace(' ', '-')}.mp4"
        self.uploaded.append(key)
        return key

    def upload_poster(self, file, title):
        key = f"posters/{title.lower().replace(' ', '-')}.jpg"
        self.uploaded.append(key)
        return key

    def delete(self, key):
        self.deleted.append(key)
        return True

    def stream_url(self, key, expires):
        return f"https://media.example.com/{key}"


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(id_allocator, "BACKOFF_SECONDS", 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def media_store():
    return FakeMediaStore()


@pytest.fixture
def client(engine, gateway, media_store):
    def _get_session():
        with Session(engine) as session:
            yield session

    fastapi_app.dependency_overrides[get_session] = _get_session
    fastapi_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    fastapi_app.dependency_overrides[get_media_store] = lambda: media_store
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_movie(session):
    def _make(price=100.0, duration_seconds=3600, status=MovieStatus.published, title="Night Train"):
        return insert_with_id(
            session,
            "movie",
            lambda movie_id: Movie(
                movie_id=movie_id,
                title=title,
                description="A test movie",
                duration_seconds=duration_seconds,
                price=price,
                file_path=f"movies/{movie_id}.mp4",
                status=status,
            ),
        )
    return _make


@pytest.fixture
def movie(make_movie):
    return make_movie()


@pytest.fixture
def make_user(session):
    def _make(email="viewer@moviepurchase.com", role="user", password="secret123"):
        return insert_with_id(
            session,
            "user",
            lambda user_id: User(
                user_id=user_id,
                name=email.split("@")[0],
                email=email,
                password=hash_password(password),
                role=role,
            ),
        )
    return _make


def auth_header(user: User) -> dict:
    token = create_access_token({"user_id": user.user_id, "is_admin": user.role == "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(make_user):
    return auth_header(make_user(email="boss@moviepurchase.com", role="admin"))

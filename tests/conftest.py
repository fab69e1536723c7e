# tests/conftest.py
import os

# must be set before storefront modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORE_BACKEND"] = "memory"
os.environ["CELERY_ALWAYS_EAGER"] = "1"
os.environ["ALLOW_MOCK_PAYMENTS"] = "1"
os.environ["QR_ACCOUNT_ID"] = ""
os.environ["QR_AUTHORIZATION_ID"] = ""

from decimal import Decimal

import pytest

import storefront.data.models  # noqa: F401
from storefront.data.database import Base, SessionLocal, engine
from storefront.domain.errors import ProcessorError
from storefront.domain.schemas import CartItem, PaymentState, SellingMethod
from storefront.services.lock_service import LocalLockService
from storefront.services.payment_gateway import InMemoryTransactionStore, PaymentGateway
from storefront.services.staging import InMemoryStagingStore, OrderStagingBuffer


class FakeQRClient:
    """Stands in for the bank API. Statuses are scripted per qr id."""

    def __init__(self):
        self.generated = []
        self.statuses = {}
        self.history = []
        self.fail = False

    def generate_qr(self, amount, reference, currency):
        if self.fail:
            raise ProcessorError("processor down")
        qr_id = f"QR{len(self.generated) + 1}"
        self.generated.append((qr_id, amount, reference, currency))
        self.statuses.setdefault(qr_id, PaymentState.PENDING)
        return qr_id, "aW1hZ2U="

    def check_qr_status(self, qr_id):
        if self.fail:
            raise ProcessorError("processor down")
        return self.statuses.get(qr_id, PaymentState.PENDING), None

    def get_qrs_by_date(self, day):
        if self.fail:
            raise ProcessorError("processor down")
        return self.history


class RecordingNotifications:
    def __init__(self):
        self.orders = []
        self.alerts = []

    def send_order_notification(self, order_id, simplified_id, phone_number, user_id=None):
        self.orders.append(order_id)

    def send_reconciliation_alert(self, token, transaction_id, reason):
        self.alerts.append((token, transaction_id, reason))


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def qr_client():
    return FakeQRClient()


@pytest.fixture
def gateway(qr_client):
    return PaymentGateway(qr_client, InMemoryTransactionStore(), allow_mock=True, mock_paid_after=3)


@pytest.fixture
def staging():
    return OrderStagingBuffer(InMemoryStagingStore())


@pytest.fixture
def locks():
    return LocalLockService()


@pytest.fixture
def notifications():
    return RecordingNotifications()


def unit_item(id="P1", price="100", quantity=2, **kw) -> CartItem:
    return CartItem(id=id, name=kw.pop("name", "Chorizo"), price=Decimal(price), quantity=quantity,
                    selling_method=SellingMethod.UNIT, **kw)


def weight_item(id="P2", price="40", weight="1.5", **kw) -> CartItem:
    return CartItem(id=id, name=kw.pop("name", "Picaña"), price=Decimal(price), weight=Decimal(weight),
                    weight_unit="kg", selling_method=SellingMethod.WEIGHT_CUSTOM, **kw)


def fixed_item(id="U1", price="95.50", weight="1.2", product_id="P3", **kw) -> CartItem:
    return CartItem(id=id, name=kw.pop("name", "Costilla"), price=Decimal(price), weight=Decimal(weight),
                    weight_unit="kg", selling_method=SellingMethod.WEIGHT_FIXED, product_id=product_id, **kw)

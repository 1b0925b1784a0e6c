from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from reading_billing.api.dependencies.auth import get_db
from reading_billing.core.security import create_access_token
from reading_billing.db.models import ClientBalance, ReaderProfile, User
from reading_billing.db.models.enums import PayoutAccountStatus, Role
from reading_billing.db.session import Base
from reading_billing.main import app
from reading_billing.services.payment_gateway import get_payment_gateway
from tests.helpers import FakeGateway


@pytest.fixture
def test_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(db_session: Session, gateway: FakeGateway) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user(*, email: str, role: Role = Role.CLIENT, is_active: bool = True) -> User:
        user = User(email=email, role=role, is_active=is_active)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def token_for_user() -> Callable[[User], str]:
    def _token_for_user(user: User) -> str:
        return create_access_token(user_id=user.id, email=user.email, role=user.role.value)

    return _token_for_user


@pytest.fixture
def auth_headers(token_for_user) -> Callable[[User], dict[str, str]]:
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for_user(user)}"}

    return _auth_headers


@pytest.fixture
def make_reader(db_session: Session, create_user) -> Callable[..., User]:
    def _make_reader(
        *,
        email: str,
        chat_rate: str | None = "2.00",
        voice_rate: str | None = None,
        video_rate: str | None = None,
        online: bool = True,
        pending_earnings: str = "0",
        payout_account_id: str | None = None,
        payout_account_status: PayoutAccountStatus = PayoutAccountStatus.UNLINKED,
        rating: str = "0",
        total_reviews: int = 0,
    ) -> User:
        user = create_user(email=email, role=Role.READER)
        db_session.add(
            ReaderProfile(
                user_id=user.id,
                display_name=email.split("@")[0],
                chat_rate=Decimal(chat_rate) if chat_rate is not None else None,
                voice_rate=Decimal(voice_rate) if voice_rate is not None else None,
                video_rate=Decimal(video_rate) if video_rate is not None else None,
                is_online=online,
                is_available=online,
                pending_earnings=Decimal(pending_earnings),
                total_earnings=Decimal(pending_earnings),
                payout_account_id=payout_account_id,
                payout_account_status=payout_account_status,
                rating=Decimal(rating),
                total_reviews=total_reviews,
            )
        )
        db_session.commit()
        return user

    return _make_reader


@pytest.fixture
def make_client(db_session: Session, create_user) -> Callable[..., User]:
    def _make_client(*, email: str, balance: str = "0") -> User:
        user = create_user(email=email, role=Role.CLIENT)
        db_session.add(ClientBalance(user_id=user.id, balance=Decimal(balance)))
        db_session.commit()
        return user

    return _make_client

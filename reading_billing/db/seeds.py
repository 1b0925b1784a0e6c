from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from reading_billing.db.models.gifts import VirtualGift
from reading_billing.db.models.platform import PLATFORM_SETTINGS_SINGLETON_ID, PlatformSettings
from reading_billing.db.session import transactional_session


@dataclass(frozen=True)
class DefaultGift:
    code: str
    name: str
    price: Decimal


DEFAULT_GIFTS: tuple[DefaultGift, ...] = (
    DefaultGift(code="rose", name="Rose", price=Decimal("1.00")),
    DefaultGift(code="crystal", name="Crystal", price=Decimal("2.50")),
    DefaultGift(code="star", name="Star", price=Decimal("5.00")),
    DefaultGift(code="moon", name="Moon", price=Decimal("10.00")),
    DefaultGift(code="sun", name="Sun", price=Decimal("25.00")),
    DefaultGift(code="diamond", name="Diamond", price=Decimal("50.00")),
)


def _upsert_platform_settings(db: Session) -> None:
    if db.get(PlatformSettings, PLATFORM_SETTINGS_SINGLETON_ID) is not None:
        return
    db.add(PlatformSettings(id=PLATFORM_SETTINGS_SINGLETON_ID))


def _upsert_gifts(db: Session) -> None:
    for gift in DEFAULT_GIFTS:
        existing_gift = db.scalar(select(VirtualGift).where(VirtualGift.code == gift.code))
        if existing_gift is None:
            db.add(VirtualGift(code=gift.code, name=gift.name, price=gift.price, is_active=True))
            continue

        existing_gift.is_active = True


def seed_defaults(db: Session) -> None:
    _upsert_platform_settings(db)
    _upsert_gifts(db)


def run_seed() -> None:
    with transactional_session() as db:
        seed_defaults(db)


if __name__ == "__main__":
    run_seed()

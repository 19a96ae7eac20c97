from collections.abc import Generator

from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.services.billing.container import BillingServices, get_billing_services


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_billing() -> BillingServices:
    return get_billing_services()

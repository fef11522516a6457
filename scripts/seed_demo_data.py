"""Seed script for demo principals and an operator token."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from paygate.api.auth import create_access_token
from paygate.core.config import get_settings
from paygate.db.session import engine, get_session
from paygate.models import Base, SubscriptionStatus, User, UserRole

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED_USERS = [
    ("demo-patient", "patient@demo.local", UserRole.PATIENT),
    ("demo-doctor", "doctor@demo.local", UserRole.DOCTOR),
    ("demo-admin", "admin@demo.local", UserRole.ADMIN),
]


def seed(session: Session) -> None:
    """Create demo users on the free plan if they are missing."""

    for user_id, email, role in SEED_USERS:
        if session.get(User, user_id) is not None:
            logger.info("User %s already exists", user_id)
            continue
        session.add(
            User(
                id=user_id,
                email=email,
                role=role,
                plan=get_settings().free_plan,
                subscription_status=SubscriptionStatus.INACTIVE,
            )
        )
        logger.info("Created user %s", user_id)
    session.commit()


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_session() as session:
        seed(session)
    token = create_access_token(subject="demo-admin", role="admin", settings=get_settings())
    logger.info("Operator token for demo-admin: %s", token)


if __name__ == "__main__":
    main()

"""
Database bootstrap: create tables and the default admin user.

Usage:
    python -m stockledger.seed
"""
import logging

from . import crud, models
from .auth import create_access_token
from .config import ADMIN_EMAIL, ADMIN_NAME, configure_logging
from .database import SessionLocal, engine

logger = logging.getLogger(__name__)


def seed(db) -> models.User:
    """
    Ensure the default admin user exists.

    Returns:
        The existing or newly created admin user
    """
    admin = crud.get_user_by_email(db, ADMIN_EMAIL)
    if admin is None:
        admin = crud.create_user(db, name=ADMIN_NAME, email=ADMIN_EMAIL, role="admin")
        logger.info(f"Admin user created: {ADMIN_EMAIL}")
    else:
        logger.info("Admin user already exists")
    return admin


def main() -> None:
    configure_logging()
    logger.info("Starting database seeding...")
    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = seed(db)
        token = create_access_token({"sub": str(admin.id), "email": admin.email, "role": admin.role})
        logger.info(f"Admin access token: {token}")
    finally:
        db.close()
    logger.info("Database seeding completed successfully.")


if __name__ == "__main__":
    main()

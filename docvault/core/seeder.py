"""Bootstrap the first super_admin on an empty database.

Invitations can only be issued by a super_admin, so a fresh deployment needs
one account created out of band. Idempotent: skips if any user exists.
"""

import logging

from sqlalchemy.orm import Session

from .config import settings
from .roles import Role

logger = logging.getLogger(__name__)


def seed_bootstrap_admin(db: Session) -> bool:
    """Create the bootstrap super_admin from settings if no user exists.

    Args:
        db: An open SQLAlchemy session.

    Returns:
        True if an account was created.
    """
    from ..models.user import User
    from ..services import audit_service, auth_service

    existing = db.query(User).count()
    if existing > 0:
        logger.debug("Database has %d users, skipping bootstrap", existing)
        return False

    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        logger.warning(
            "No users exist and BOOTSTRAP_ADMIN_EMAIL / BOOTSTRAP_ADMIN_PASSWORD are unset; "
            "nobody can sign in or send invitations"
        )
        return False

    user = auth_service.create_user(
        db,
        email=settings.bootstrap_admin_email,
        password=settings.bootstrap_admin_password,
        display_name=settings.bootstrap_admin_name,
        role=Role.SUPER_ADMIN,
    )
    audit_service.record(db, None, "bootstrap_admin", "user", user.user_id, details={"email": user.email})
    db.commit()
    logger.info("Bootstrap super_admin created: %s", user.email)
    return True

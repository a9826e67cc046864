"""Authentication module — deep module exposing FastAPI dependencies.

Public interface:
    ``AuthContext``           — identity + effective role of the caller,
                                threaded explicitly through every service call.
    ``require_auth``          — returns AuthContext or raises 401.
    ``require_capability(c)`` — dependency factory; 403 unless the caller
                                holds capability *c*.
    ``load_role``             — fail-closed role lookup.

The role is re-read from the store on every request and never cached across
requests, so a role change applies to the next data access and never
retroactively to one already authorised.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .capabilities import Capabilities, Capability, resolve_capabilities
from .config import settings
from .logging_config import user_id_var
from .roles import Role, parse_role
from .token_factory import decode_token
from ..database import get_db
from ..exceptions import AuthenticationError, CommunicationError, ForbiddenError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Resolved caller context available to every endpoint and service.

    ``role`` is the *effective* role: ``None`` when the user has no role row,
    when the account is inactive, or when the role lookup failed. Every
    capability and visibility check reads this field, never ``assigned_role``.
    """

    user_id: str
    role: Optional[Role]
    is_active: bool = True
    assigned_role: Optional[Role] = None
    role_lookup_failed: bool = False

    @property
    def capabilities(self) -> Capabilities:
        return resolve_capabilities(self.role)

    def can(self, capability: Capability) -> bool:
        return self.capabilities.allows(capability)

    def ensure_role_known(self) -> None:
        """Raise CommunicationError if the role could not be loaded.

        Visibility-filtered reads call this first so that an unreachable role
        store is not mistaken for "nothing visible".
        """
        if self.role_lookup_failed:
            raise CommunicationError("Could not determine permissions", target="database")

    def require(self, capability: Capability) -> None:
        """Raise unless the caller holds *capability*.

        A denial caused by an unreachable role store is reported as
        CommunicationError (retryable), not ForbiddenError.
        """
        if self.can(capability):
            return
        self.ensure_role_known()
        logger.info(
            "Capability denied",
            extra={"capability": capability.value, "role": self.role.value if self.role else None},
        )
        raise ForbiddenError()


def load_role(db: Session, user_id: str) -> tuple[Optional[Role], bool]:
    """Load the stored role of *user_id*.

    Returns ``(role, lookup_failed)``. A failed lookup degrades to
    ``(None, True)``: no role, so every capability resolves false.
    """
    from ..models.user import UserRole

    try:
        value = db.query(UserRole.role).filter(UserRole.user_id == user_id).scalar()
    except SQLAlchemyError as e:
        logger.warning("Role lookup failed, denying by default: %s", type(e).__name__)
        db.rollback()
        return None, True
    return parse_role(value), False


def build_auth_context(db: Session, user_id: str, is_active: bool) -> AuthContext:
    """Assemble the context for an identified user. Inactive = no effective role."""
    assigned, failed = load_role(db, user_id)
    return AuthContext(
        user_id=user_id,
        role=assigned if is_active else None,
        is_active=is_active,
        assigned_role=assigned,
        role_lookup_failed=failed,
    )


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Require a valid bearer token and return the caller's AuthContext."""
    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    payload = decode_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    from ..models.user import User

    row = db.query(User.user_id, User.is_active).filter(User.user_id == payload.sub).first()
    if row is None:
        raise AuthenticationError("User not found")

    user_id_var.set(row.user_id)
    return build_auth_context(db, row.user_id, bool(row.is_active))


def require_capability(capability: Capability) -> Callable[..., AuthContext]:
    """Dependency factory gating an endpoint on one capability."""

    def _dependency(auth: AuthContext = Depends(require_auth)) -> AuthContext:
        auth.require(capability)
        return auth

    _dependency.__name__ = f"require_{capability.value}"
    return _dependency

"""Repository for users and their role assignments."""

from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from .base import BaseRepository
from ..core.roles import Role
from ..exceptions import UserNotFoundError
from ..models.user import User, UserRole


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository(BaseRepository[User]):
    model_class = User
    id_column = "user_id"
    not_found_error = UserNotFoundError

    def _base_query(self):
        return self.db.query(User).options(joinedload(User.role_assignment))

    def get_by_email(self, email: str) -> Optional[User]:
        return (
            self._base_query()
            .filter(func.lower(User.email) == normalize_email(email))
            .first()
        )

    def email_exists(self, email: str) -> bool:
        return (
            self.db.query(User.user_id)
            .filter(func.lower(User.email) == normalize_email(email))
            .first()
            is not None
        )

    def list_all(self) -> List[User]:
        return self._base_query().order_by(User.created_at, User.user_id).all()

    def count(self) -> int:
        return self.db.query(func.count(User.user_id)).scalar() or 0

    def count_by_role(self) -> dict[str, int]:
        rows = self.db.query(UserRole.role, func.count(UserRole.user_id)).group_by(UserRole.role).all()
        counts = {role.value: 0 for role in Role}
        for role, count in rows:
            counts[Role(role).value] = count
        return counts

    def active_ids_among(self, user_ids: Iterable[str]) -> set[str]:
        """Subset of *user_ids* that name existing, active users."""
        ids = set(user_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(User.user_id)
            .filter(User.user_id.in_(ids), User.is_active.is_(True))
            .all()
        )
        return {row.user_id for row in rows}

    def set_role(self, user: User, role: Role) -> None:
        """Insert or replace the user's single role row."""
        if user.role_assignment is None:
            user.role_assignment = UserRole(user_id=user.user_id, role=role)
        else:
            user.role_assignment.role = role
        self.db.flush()

    def delete(self, user: User) -> None:
        self.db.delete(user)
        self.db.flush()

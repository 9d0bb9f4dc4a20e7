import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from campus_bot.logging_config import get_logger
from campus_bot.services.exceptions import NotFoundError

logger = get_logger("user_service")


class Role(str, Enum):
    APPLICANT = "applicant"
    STUDENT = "student"
    EMPLOYEE = "employee"
    MANAGER = "manager"


ROLE_LABELS = {
    Role.APPLICANT: "Абитуриент",
    Role.STUDENT: "Студент",
    Role.EMPLOYEE: "Сотрудник",
    Role.MANAGER: "Руководитель",
}

# Placeholder classification carried over from the pilot: a literal first
# name picks the role. Not an authorization mechanism.
FIRST_NAME_ROLES = {
    "Администратор": Role.MANAGER,
    "Учитель": Role.EMPLOYEE,
    "Абитуриент": Role.APPLICANT,
}


def classify_role(first_name: str, use_name_overrides: bool = True) -> Role:
    if use_name_overrides:
        return FIRST_NAME_ROLES.get(first_name.strip(), Role.STUDENT)
    return Role.STUDENT


def role_label(role: Optional[Role]) -> str:
    if role is None:
        return "не указана"
    return ROLE_LABELS.get(role, role.value)


@dataclass
class User:
    user_id: str
    first_name: str
    last_name: str
    age: int
    gender: str
    email: str
    role: Role = Role.STUDENT
    moodle_token: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserService:
    """In-memory user directory. Shared between the webhook path and background jobs."""

    def __init__(self):
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def create_user(self, user: User) -> User:
        """Create or re-register a user; an existing moodle token is kept."""
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._users.get(user.user_id)
            stored = replace(user, updated_at=now)
            if existing:
                stored.created_at = existing.created_at
                stored.moodle_token = stored.moodle_token or existing.moodle_token
            self._users[user.user_id] = stored
        logger.info(f"User saved: {user.user_id}", extra={"context": {"role": user.role.value}})
        return replace(stored)

    def list_users(self) -> list[User]:
        with self._lock:
            return [replace(user) for user in self._users.values()]

    def set_moodle_token(self, user_id: str, token: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            user.moodle_token = token
            user.updated_at = datetime.now(timezone.utc)

from typing import Optional

from campus_bot.bot.handler import Request, ack, reply
from campus_bot.bot.responder import Responder
from campus_bot.services.capabilities import Capability, has_capability
from campus_bot.services.user_service import User, UserService

SUBJECT_PREVIEW_LENGTH = 30
DATETIME_FORMAT = "%d.%m.%Y %H:%M"


def split_callback(payload: str, prefix: str) -> tuple[str, str]:
    """``"ticket:view:DOE-1"`` with prefix ``"ticket:"`` -> ``("view", "DOE-1")``."""
    rest = payload[len(prefix) :] if payload.startswith(prefix) else payload
    action, _, param = rest.partition(":")
    return action, param


def preview(text: str, limit: int = SUBJECT_PREVIEW_LENGTH) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


async def require_capability(
    users: UserService,
    request: Request,
    responder: Responder,
    capability: Capability,
    denied_text: str,
) -> Optional[User]:
    """Menu gating by role. Returns the user, or None after telling them why not."""
    user = users.get_user(request.user_id) if request.user_id else None
    if user is None:
        await ack(request, responder)
        await reply(request, responder, "❌ Пользователь не найден. Пройди регистрацию: /register")
        return None
    if not has_capability(user.role, capability):
        await ack(request, responder)
        await reply(request, responder, denied_text)
        return None
    return user

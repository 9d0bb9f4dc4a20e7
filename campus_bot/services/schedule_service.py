import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from campus_bot.logging_config import get_logger

logger = get_logger("schedule_service")


@dataclass(frozen=True)
class ScheduleItem:
    starts_at: datetime
    discipline: str
    instructor: str
    location: str
    description: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleService:
    """Today's classes for a user.

    Serves a fixed demo timetable relative to the current time; ``lag_seconds``
    imitates the latency of the university timetable backend.
    """

    def __init__(self, lag_seconds: float = 0.0, clock: Callable[[], datetime] = _now):
        self.lag_seconds = lag_seconds
        self._clock = clock

    async def get_schedule(self, user_id: str) -> list[ScheduleItem]:
        if self.lag_seconds > 0:
            await asyncio.sleep(self.lag_seconds)
        now = self._clock()
        items = [
            ScheduleItem(
                starts_at=now + timedelta(hours=2),
                discipline="Мат. анализ",
                instructor="доц. Светлана Иванова",
                location="Корпус А, ауд. 302",
                description="Лекция. Возьмите тетрадь и калькулятор.",
            ),
            ScheduleItem(
                starts_at=now + timedelta(hours=5),
                discipline="Программирование",
                instructor="проф. Алексей Петров",
                location="Корпус Б, ауд. 115",
                description="Практика. Подготовьте вопросы по асинхронности.",
            ),
        ]
        logger.debug(f"Schedule loaded: {len(items)} items", extra={"context": {"user_id": user_id}})
        return items

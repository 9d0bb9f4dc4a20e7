import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional

from campus_bot.logging_config import get_logger
from campus_bot.services.llm.base import LLMProvider
from campus_bot.services.moodle_service import Course
from campus_bot.services.schedule_service import ScheduleItem
from campus_bot.services.user_service import User, role_label

logger = get_logger("ai_service")

SYSTEM_PROMPT = (
    "Ты - умный помощник для студентов и сотрудников университета. "
    "Ты помогаешь отвечать на вопросы, связанные с учебным процессом, курсами "
    "и другими аспектами университетской жизни. Отвечай кратко и по делу, на русском языке. "
    "Если информации недостаточно, честно скажи об этом.\n\n{context}"
)

_TAG_RE = re.compile(r"<[^>]+>")
COURSE_SUMMARY_LIMIT = 200


def clean_html(html: str) -> str:
    text = html.replace("<br />", "\n").replace("<br>", "\n").replace("&nbsp;", " ")
    text = text.replace("<strong>", "**").replace("</strong>", "**")
    return _TAG_RE.sub("", text).strip()


@dataclass
class QuestionContext:
    user: User
    courses: list[Course] = field(default_factory=list)
    schedule: list[ScheduleItem] = field(default_factory=list)

    def render(self) -> str:
        user = self.user
        parts = [
            "Информация о пользователе:\n"
            f"- Имя: {user.full_name}\n"
            f"- Возраст: {user.age}\n"
            f"- Роль: {role_label(user.role)}"
        ]
        if self.schedule:
            lines = ["Расписание пользователя:"]
            for item in self.schedule:
                lines.append(
                    f"- {item.discipline} в {item.starts_at.strftime('%H:%M')} ({item.location}, {item.instructor})"
                )
            parts.append("\n".join(lines))
        if self.courses:
            lines = ["Курсы пользователя:"]
            for course in self.courses:
                summary = clean_html(course.summary)
                if len(summary) > COURSE_SUMMARY_LIMIT:
                    summary = summary[:COURSE_SUMMARY_LIMIT] + "..."
                status = "завершён" if course.completed else "в процессе"
                progress = f"{course.progress:.0f}%" if course.progress is not None else "нет данных"
                line = f"- {course.fullname} (прогресс: {progress}, статус: {status})"
                if summary:
                    line += f": {summary}"
                lines.append(line)
            parts.append("\n".join(lines))
        return "\n\n".join(parts)


class AIService:
    def __init__(self, provider: Optional[LLMProvider], model: Optional[str] = None):
        self.provider = provider
        self.model = model

    @property
    def available(self) -> bool:
        return self.provider is not None

    async def ask(self, question: str, context: QuestionContext) -> str:
        if self.provider is None:
            raise RuntimeError("AI provider is not configured")
        system_prompt = SYSTEM_PROMPT.format(context=context.render())
        response = await asyncio.to_thread(self.provider.answer, system_prompt, question, model=self.model)
        logger.info(
            "AI answer generated",
            extra={"context": {"user_id": context.user.user_id, "model": response.model}},
        )
        return response.content.strip()

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from campus_bot.services.user_service import Role


class Capability(str, Enum):
    HELP = "help"
    SCHEDULE = "schedule"
    CONTACT = "contact"
    MY_TICKETS = "my_tickets"
    REMINDER = "reminder"
    ASK = "ask"
    STUDENT_SCHEDULE = "student_schedule"
    DEANERY = "deanery"
    LIBRARY = "library"
    MOODLE = "moodle"
    BUSINESS_TRIP = "business_trip"
    LIBRARY_MANAGE = "library_manage"
    NEWS = "news"
    SEND_NEWS = "send_news"
    TICKETS = "tickets"
    DOCUMENTS = "documents"


ROLE_CAPABILITIES: dict[Role, tuple[Capability, ...]] = {
    Role.APPLICANT: (Capability.HELP, Capability.NEWS, Capability.REMINDER, Capability.ASK),
    Role.STUDENT: (
        Capability.HELP,
        Capability.SCHEDULE,
        Capability.STUDENT_SCHEDULE,
        Capability.DEANERY,
        Capability.LIBRARY,
        Capability.MOODLE,
        Capability.NEWS,
        Capability.CONTACT,
        Capability.MY_TICKETS,
        Capability.REMINDER,
        Capability.ASK,
    ),
    Role.EMPLOYEE: (
        Capability.HELP,
        Capability.SCHEDULE,
        Capability.BUSINESS_TRIP,
        Capability.LIBRARY_MANAGE,
        Capability.NEWS,
        Capability.CONTACT,
        Capability.MY_TICKETS,
        Capability.REMINDER,
        Capability.ASK,
    ),
    Role.MANAGER: (
        Capability.HELP,
        Capability.SCHEDULE,
        Capability.NEWS,
        Capability.SEND_NEWS,
        Capability.TICKETS,
        Capability.DOCUMENTS,
        Capability.LIBRARY_MANAGE,
        Capability.CONTACT,
        Capability.REMINDER,
        Capability.ASK,
    ),
}


@dataclass(frozen=True)
class CommandInfo:
    command: str
    description: str
    capability: Capability


COMMANDS: dict[Capability, CommandInfo] = {
    info.capability: info
    for info in (
        CommandInfo("/help", "Справка по командам", Capability.HELP),
        CommandInfo("/schedule", "Расписание", Capability.SCHEDULE),
        CommandInfo("/myschedule", "Моё расписание", Capability.STUDENT_SCHEDULE),
        CommandInfo("/library", "Библиотека", Capability.LIBRARY),
        CommandInfo("/library_manage", "Управление библиотекой", Capability.LIBRARY_MANAGE),
        CommandInfo("/businesstrip", "Командировки", Capability.BUSINESS_TRIP),
        CommandInfo("/contact", "Обращение в поддержку", Capability.CONTACT),
        CommandInfo("/mytickets", "Мои обращения", Capability.MY_TICKETS),
        CommandInfo("/reminder", "Напоминания", Capability.REMINDER),
        CommandInfo("/ask", "Задать вопрос AI-помощнику", Capability.ASK),
        CommandInfo("/deanery", "Деканат", Capability.DEANERY),
        CommandInfo("/moodle", "Moodle", Capability.MOODLE),
        CommandInfo("/news", "Новости", Capability.NEWS),
        CommandInfo("/send_news", "Отправить новость", Capability.SEND_NEWS),
        CommandInfo("/tickets", "Обращения пользователей", Capability.TICKETS),
        CommandInfo("/documents", "Заявления деканата", Capability.DOCUMENTS),
    )
}


def capabilities_for(role: Optional[Role]) -> tuple[Capability, ...]:
    if role is None:
        return (Capability.HELP,)
    return ROLE_CAPABILITIES.get(role, (Capability.HELP,))


def has_capability(role: Optional[Role], capability: Capability) -> bool:
    return capability in capabilities_for(role)


def commands_for_role(role: Optional[Role]) -> list[CommandInfo]:
    return [COMMANDS[cap] for cap in capabilities_for(role) if cap in COMMANDS]

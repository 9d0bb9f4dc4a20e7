"""Handler registry: builds the command and callback tables once at startup."""

from dataclasses import dataclass, field

from campus_bot.bot.router import CallbackTable, CommandTable, Router
from campus_bot.handlers.ask import AskHandler
from campus_bot.handlers.businesstrip import BusinessTripHandler
from campus_bot.handlers.deanery import DeaneryHandler
from campus_bot.handlers.documents import DocumentsHandler
from campus_bot.handlers.library import LibraryHandler
from campus_bot.handlers.library_manage import LibraryManageHandler
from campus_bot.handlers.menu import FallbackHandler, MenuHandler, StartHandler
from campus_bot.handlers.moodle import MoodleHandler
from campus_bot.handlers.mytickets import MyTicketsHandler
from campus_bot.handlers.news import NewsHandler, SendNewsHandler
from campus_bot.handlers.registration import RegistrationHandler
from campus_bot.handlers.reminder import ReminderHandler
from campus_bot.handlers.schedule import ScheduleHandler
from campus_bot.handlers.support import ContactHandler
from campus_bot.handlers.tickets import TicketsHandler
from campus_bot.services.ai_service import AIService
from campus_bot.services.businesstrip_service import BusinessTripService
from campus_bot.services.deanery_service import DeaneryService
from campus_bot.services.library_service import LibraryService
from campus_bot.services.moodle_service import MoodleService
from campus_bot.services.news_service import NewsService
from campus_bot.services.reminder_service import ReminderService
from campus_bot.services.schedule_service import ScheduleService
from campus_bot.services.support_service import SupportService
from campus_bot.services.user_service import UserService


@dataclass
class Services:
    moodle: MoodleService
    ai: AIService = field(default_factory=lambda: AIService(None))
    users: UserService = field(default_factory=UserService)
    support: SupportService = field(default_factory=SupportService)
    deanery: DeaneryService = field(default_factory=DeaneryService)
    news: NewsService = field(default_factory=NewsService)
    reminders: ReminderService = field(default_factory=ReminderService)
    schedule: ScheduleService = field(default_factory=ScheduleService)
    library: LibraryService = field(default_factory=LibraryService)
    trips: BusinessTripService = field(default_factory=BusinessTripService)


def build_router(
    services: Services,
    verification_code: str = "1111",
    role_overrides: bool = True,
) -> Router:
    """Wire every handler. Raises RoutingTableError for an inconsistent callback table."""
    menu = MenuHandler(services.users)
    registration = RegistrationHandler(services.users, verification_code, role_overrides)
    my_tickets = MyTicketsHandler(services.support)
    tickets = TicketsHandler(services.support, services.users)
    deanery = DeaneryHandler(services.deanery)
    documents = DocumentsHandler(services.deanery, services.users)
    moodle = MoodleHandler(services.users, services.moodle)
    reminder = ReminderHandler(services.reminders)
    schedule = ScheduleHandler(services.schedule)
    library = LibraryHandler(services.library, services.users)
    library_manage = LibraryManageHandler(services.library, services.users)

    commands = CommandTable(
        [
            ("/start", StartHandler(services.users)),
            ("/menu", menu),
            ("/help", menu),
            ("/register", registration),
            ("/schedule", schedule),
            ("/myschedule", schedule),
            ("/contact", ContactHandler(services.support)),
            ("/mytickets", my_tickets),
            ("/tickets", tickets),
            ("/deanery", deanery),
            ("/documents", documents),
            ("/library", library),
            ("/library_manage", library_manage),
            ("/businesstrip", BusinessTripHandler(services.trips)),
            ("/news", NewsHandler(services.news)),
            ("/send_news", SendNewsHandler(services.news, services.users)),
            ("/moodle", moodle),
            ("/reminder", reminder),
            ("/ask", AskHandler(services.ai, services.users, services.moodle, services.schedule)),
        ],
        fallback=FallbackHandler(),
    )
    callbacks = CallbackTable(
        [
            ("user_reg:*", registration),
            ("ticket:*", tickets),
            ("myticket:*", my_tickets),
            ("doc:*", deanery),
            ("doc_admin:*", documents),
            ("book:*", library),
            ("lib_manage:*", library_manage),
            ("moodle:*", moodle),
            ("reminder:*", reminder),
        ]
    )
    return Router(commands, callbacks)

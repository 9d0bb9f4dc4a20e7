from campus_bot.bot.handler import Handler, Request, ack, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.handlers.common import split_callback
from campus_bot.logging_config import get_logger
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.library_service import LOAN_STATUS_LABELS, BookUnavailableError, LibraryService
from campus_bot.services.user_service import UserService

logger = get_logger("library")

CALLBACK_PREFIX = "book:"
CALLBACK_BORROW = "book:borrow:"

DATE_FORMAT = "%d.%m.%Y"
OFFER_LIMIT = 4


class LibraryHandler(Handler):
    """/library: the reader's loans and the books that can be requested right now."""

    def __init__(self, library: LibraryService, users: UserService):
        self.library = library
        self.users = users

    async def handle(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return
        if request.is_callback:
            await self._handle_callback(request, responder)
            return

        lines = ["📚 Библиотека", ""]
        loans = self.library.list_user_loans(request.user_id)
        if loans:
            lines.append("📖 Твои книги:")
            for loan in loans:
                lines.append(f"• {loan.book.title} ({loan.book.author}) — {LOAN_STATUS_LABELS[loan.status]}")
                if loan.return_due:
                    lines.append(f"  Срок возврата: {loan.return_due.strftime(DATE_FORMAT)}")
            lines.append("")

        lines.append("Доступные книги для заказа:")
        available = self.library.list_available()
        keyboard = Keyboard()
        for book in available[:OFFER_LIMIT]:
            keyboard.row(Button(f"📖 {book.title}", CALLBACK_BORROW + book.id, ButtonIntent.POSITIVE))
        if not available:
            lines.append("Нет доступных книг в данный момент.")

        await reply(request, responder, "\n".join(lines), keyboard=None if keyboard.is_empty() else keyboard)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        await ack(request, responder)
        action, book_id = split_callback(request.args, CALLBACK_PREFIX)
        if action != "borrow" or not book_id:
            return

        user = self.users.get_user(request.user_id)
        borrower_name = user.full_name if user else ""
        try:
            loan = self.library.borrow_book(request.user_id, book_id, borrower_name)
        except (NotFoundError, BookUnavailableError) as e:
            logger.info(f"Borrow refused: {e}", extra={"context": {"user_id": request.user_id}})
            await reply(request, responder, "❌ Ошибка: книга недоступна")
            return

        await reply(
            request,
            responder,
            "✅ Книга заказана!\n\n"
            f"📖 {loan.book.title}\n"
            f"Автор: {loan.book.author}\n"
            f"Срок возврата: {loan.return_due.strftime(DATE_FORMAT)}\n\n"
            "Книга будет готова к выдаче в течение 1-2 рабочих дней.",
        )

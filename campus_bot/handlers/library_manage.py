from campus_bot.bot.handler import Handler, Request, ack, notify, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.handlers.common import require_capability, split_callback
from campus_bot.logging_config import get_logger
from campus_bot.services.capabilities import Capability
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.library_service import LibraryService, Loan, LoanStatus
from campus_bot.services.user_service import UserService

logger = get_logger("library_manage")

CALLBACK_PREFIX = "lib_manage:"

SECTION_LIMIT = 10
BUTTON_TEXT_LIMIT = 40
DATE_FORMAT = "%d.%m.%Y"
DATETIME_FORMAT = "%d.%m.%Y %H:%M"
FOOTER = "Используй /library_manage чтобы посмотреть все запросы."

# status shown in the section -> (section title, button label, callback action)
SECTIONS = (
    (LoanStatus.REQUESTED, "⏳ Запрошенные книги:", "✅ Выдано", "issue"),
    (LoanStatus.ISSUED, "📦 Выданные (ожидают получения):", "✅ Забрано", "taken"),
    (LoanStatus.TAKEN, "📖 Забранные книги:", "📚 Вернулась", "returned"),
)


def _button_text(label: str, title: str) -> str:
    text = f"{label}: {title}"
    return text if len(text) <= BUTTON_TEXT_LIMIT else text[: BUTTON_TEXT_LIMIT - 3] + "..."


def parse_loan_target(param: str) -> tuple[str, str]:
    """``"<userID>:<bookID>"`` -> ``(user_id, book_id)``; empty strings when malformed."""
    parts = param.split(":")
    if len(parts) != 2 or not all(parts):
        return "", ""
    return parts[0], parts[1]


class LibraryManageHandler(Handler):
    """/library_manage: library staff move book requests through issue -> taken -> returned."""

    def __init__(self, library: LibraryService, users: UserService):
        self.library = library
        self.users = users

    async def handle(self, request: Request, responder: Responder) -> None:
        user = await require_capability(
            self.users,
            request,
            responder,
            Capability.LIBRARY_MANAGE,
            "❌ Эта команда доступна только сотрудникам и руководителям.",
        )
        if user is None:
            return

        if request.is_callback:
            await self._handle_callback(request, responder)
        else:
            await self._show_requests(request, responder)

    async def _show_requests(self, request: Request, responder: Responder) -> None:
        loans = self.library.list_active_loans()
        if not loans:
            await reply(request, responder, "📚 Управление библиотекой\n\n✅ Нет активных запросов на книги.")
            return

        lines = ["📚 Управление библиотекой", "", f"Активных запросов: {len(loans)}", ""]
        keyboard = Keyboard()
        for status, title, label, action in SECTIONS:
            section = [loan for loan in loans if loan.status == status]
            if not section:
                continue
            lines.append(title)
            for loan in section[:SECTION_LIMIT]:
                line = f"• {loan.book.title} — {self._borrower(loan)}"
                if loan.taken_at:
                    line += f" (забрано: {loan.taken_at.strftime(DATETIME_FORMAT)})"
                lines.append(line)
                keyboard.row(
                    Button(
                        _button_text(label, loan.book.title),
                        f"{CALLBACK_PREFIX}{action}:{loan.user_id}:{loan.book.id}",
                        ButtonIntent.POSITIVE,
                    )
                )
            lines.append("")
        await reply(request, responder, "\n".join(lines).rstrip(), keyboard=keyboard)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        await ack(request, responder)
        action, param = split_callback(request.args, CALLBACK_PREFIX)
        user_id, book_id = parse_loan_target(param)
        if not user_id:
            await reply(request, responder, "❌ Ошибка: неверный формат запроса")
            return

        if action == "issue":
            await self._issue(request, responder, user_id, book_id)
        elif action == "taken":
            await self._mark_taken(request, responder, user_id, book_id)
        elif action == "returned":
            await self._mark_returned(request, responder, user_id, book_id)

    async def _issue(self, request: Request, responder: Responder, user_id: str, book_id: str) -> None:
        try:
            loan = self.library.issue_book(user_id, book_id)
        except NotFoundError as e:
            logger.error(f"Failed to issue book: {e}", extra={"context": {"user_id": user_id, "book_id": book_id}})
            await reply(request, responder, "❌ Ошибка при выдаче книги")
            return

        notification = f'✅ Книга "{loan.book.title}" готова к выдаче!\n\n'
        if loan.return_due:
            notification += f"Срок возврата: {loan.return_due.strftime(DATE_FORMAT)}\n\n"
        notification += "Можешь забрать книгу в библиотеке."
        if await notify(responder, user_id, notification):
            logger.info("Reader notified about book ready", extra={"context": {"user_id": user_id, "book_id": book_id}})

        await reply(
            request,
            responder,
            f'✅ Книга "{loan.book.title}" отмечена как готовая к выдаче.\n\n'
            f"Пользователь {self._borrower(loan)} получил уведомление.\n\n" + FOOTER,
        )

    async def _mark_taken(self, request: Request, responder: Responder, user_id: str, book_id: str) -> None:
        try:
            loan = self.library.mark_taken(user_id, book_id)
        except NotFoundError as e:
            logger.error(f"Failed to mark book taken: {e}", extra={"context": {"user_id": user_id, "book_id": book_id}})
            await reply(request, responder, "❌ Ошибка при отметке книги как забранной")
            return
        await reply(
            request,
            responder,
            f'✅ Книга "{loan.book.title}" отмечена как забранная пользователем {self._borrower(loan)}.\n\n' + FOOTER,
        )

    async def _mark_returned(self, request: Request, responder: Responder, user_id: str, book_id: str) -> None:
        try:
            loan = self.library.mark_returned(user_id, book_id)
        except NotFoundError as e:
            logger.error(
                f"Failed to mark book returned: {e}", extra={"context": {"user_id": user_id, "book_id": book_id}}
            )
            await reply(request, responder, "❌ Ошибка при отметке книги как возвращенной")
            return
        await reply(
            request,
            responder,
            f'✅ Книга "{loan.book.title}" отмечена как возвращенная в библиотеку пользователем '
            f"{self._borrower(loan)}.\n\nКнига снова доступна для выдачи.\n\n" + FOOTER,
        )

    def _borrower(self, loan: Loan) -> str:
        if loan.borrower_name.strip():
            return loan.borrower_name
        user = self.users.get_user(loan.user_id)
        return user.full_name if user else loan.user_id

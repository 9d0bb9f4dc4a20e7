from campus_bot.bot.handler import Handler, Request, ack, notify, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep, required_text
from campus_bot.handlers.common import DATETIME_FORMAT, preview, require_capability, split_callback
from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import STEP_TICKET_REPLY
from campus_bot.services.capabilities import Capability
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.support_service import SupportService, TicketStatus
from campus_bot.services.user_service import UserService

logger = get_logger("tickets")

CALLBACK_PREFIX = "ticket:"
REPLY_TARGET_KEY = "replying_to_ticket"


class TicketsHandler(Handler):
    """/tickets: staff view of open support tickets with reply and close actions."""

    def __init__(self, support: SupportService, users: UserService):
        self.support = support
        self.users = users
        self.wizard = Wizard(
            "ticket_reply",
            [WizardStep("response", validate=required_text("❌ Ответ не может быть пустым"))],
            step_tag=STEP_TICKET_REPLY,
            context_keys=(REPLY_TARGET_KEY,),
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        user = await require_capability(
            self.users, request, responder, Capability.TICKETS, "❌ Эта команда доступна только руководителям."
        )
        if user is None:
            return

        if request.is_callback:
            await self._handle_callback(request, responder)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_reply(request, responder)
        else:
            await self._show_open_tickets(request, responder)

    async def _show_open_tickets(self, request: Request, responder: Responder) -> None:
        pending = [t for t in self.support.list_tickets() if t.is_open]
        if not pending:
            await reply(request, responder, "📋 Обращения\n\n✅ Нет нерешенных обращений.")
            return

        lines = ["📋 Обращения\n", f"Нерешенных обращений: {len(pending)}\n"]
        keyboard = Keyboard()
        for ticket in pending:
            lines.append(f"• #{ticket.id}: {ticket.subject} ({ticket.status.value})")
            keyboard.row(Button(f"📄 {preview(ticket.subject)}", f"ticket:view:{ticket.id}"))
        await reply(request, responder, "\n".join(lines), keyboard=keyboard)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        action, ticket_id = split_callback(request.args, CALLBACK_PREFIX)
        await ack(request, responder)

        ticket = self.support.get_ticket(ticket_id) if ticket_id else None
        if ticket is None:
            await reply(request, responder, "❌ Обращение не найдено")
            return

        if action == "view":
            text = (
                f"📄 Обращение #{ticket.id}\n\n"
                f"Тема: {ticket.subject}\n"
                f"От: {ticket.user_id}\n"
                f"Статус: {ticket.status.value}\n"
                f"Создано: {ticket.created_at.strftime(DATETIME_FORMAT)}\n\n"
                f"Сообщение:\n{ticket.message}\n\n"
            )
            text += f"📤 Ответ руководителя:\n{ticket.response}\n\n" if ticket.response else "Ответ ещё не дан.\n\n"
            if ticket.user_reply:
                text += f"📥 Ответы пользователя:\n{ticket.user_reply}\n\n"

            keyboard = Keyboard()
            if not ticket.response or ticket.user_reply:
                keyboard.row(Button("✍️ Ответить", f"ticket:reply:{ticket.id}", ButtonIntent.POSITIVE))
            keyboard.row(Button("✅ Закрыть", f"ticket:close:{ticket.id}", ButtonIntent.POSITIVE))
            await reply(request, responder, text, keyboard=keyboard)
        elif action == "reply":
            self.wizard.start(request.state, **{REPLY_TARGET_KEY: ticket.id})
            await reply(request, responder, "✍️ Напиши ответ на обращение:")
        elif action == "close":
            if not ticket.is_open:
                await reply(request, responder, f"ℹ️ Обращение #{ticket.id} уже закрыто")
                return
            self.support.update_status(ticket.id, TicketStatus.CLOSED)
            await notify(
                responder,
                ticket.user_id,
                f"🔒 Твоё обращение #{ticket.id} закрыто\n\n"
                f"Тема: {ticket.subject}\n\n"
                "Обращение закрыто администратором. Если у тебя есть дополнительные вопросы, "
                "создай новое обращение через /contact",
            )
            await reply(request, responder, "✅ Обращение закрыто. Пользователь получит уведомление.")

    async def _handle_reply(self, request: Request, responder: Responder) -> None:
        state = request.state
        ticket_id = self.wizard.context(state, REPLY_TARGET_KEY)
        if not ticket_id:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Ошибка: не найден ID обращения")
            return

        outcome = self.wizard.accept_text(state, request.args)
        if outcome.transition != Transition.COMPLETE:
            await reply(request, responder, outcome.error or "❌ Ответ не может быть пустым")
            return

        response = self.wizard.values(state)["response"]
        try:
            ticket = self.support.add_response(ticket_id, response, request.user_id)
        except NotFoundError:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Обращение не найдено")
            return

        await notify(
            responder,
            ticket.user_id,
            f"📬 Новый ответ на твоё обращение #{ticket.id}\n\n"
            f"Тема: {ticket.subject}\n\n"
            f"Ответ:\n{response}\n\n"
            "Используй /mytickets чтобы посмотреть все свои обращения и ответить.",
        )
        self.wizard.finish(state)
        await reply(
            request,
            responder,
            f"✅ Ответ на обращение #{ticket.id} сохранён!\n\n"
            f"Ответ:\n{response}\n\n"
            "Пользователь получит уведомление. Тикет остаётся открытым до явного закрытия.",
        )

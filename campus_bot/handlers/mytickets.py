from campus_bot.bot.handler import Handler, Request, ack, notify, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep, required_text
from campus_bot.handlers.common import DATETIME_FORMAT, preview, split_callback
from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import STEP_TICKET_USER_REPLY
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.support_service import STATUS_LABELS, SupportService

logger = get_logger("mytickets")

CALLBACK_PREFIX = "myticket:"
REPLY_TARGET_KEY = "replying_to_my_ticket"


class MyTicketsHandler(Handler):
    """/mytickets: the author's view of their tickets; lets them answer a staff response."""

    def __init__(self, support: SupportService):
        self.support = support
        self.wizard = Wizard(
            "ticket_user_reply",
            [WizardStep("reply", validate=required_text("❌ Ответ не может быть пустым"))],
            step_tag=STEP_TICKET_USER_REPLY,
            context_keys=(REPLY_TARGET_KEY,),
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return

        if request.is_callback:
            await self._handle_callback(request, responder)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_reply(request, responder)
        else:
            await self._show_tickets(request, responder)

    async def _show_tickets(self, request: Request, responder: Responder) -> None:
        tickets = self.support.list_user_tickets(request.user_id)
        if not tickets:
            await reply(
                request, responder, "📋 У тебя пока нет обращений.\n\nИспользуй /contact чтобы создать обращение."
            )
            return

        keyboard = Keyboard()
        for ticket in tickets:
            label = STATUS_LABELS[ticket.status].split(" ", 1)[0]
            keyboard.row(Button(f"{label} {preview(ticket.subject)}", f"myticket:view:{ticket.id}"))
        await reply(request, responder, f"📋 Мои обращения ({len(tickets)})\n\nВыбери обращение:", keyboard=keyboard)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        action, ticket_id = split_callback(request.args, CALLBACK_PREFIX)
        await ack(request, responder)

        ticket = self.support.get_ticket(ticket_id) if ticket_id else None
        if ticket is None:
            await reply(request, responder, "❌ Обращение не найдено")
            return
        if ticket.user_id != request.user_id:
            logger.warning(
                "Access to someone else's ticket",
                extra={"context": {"ticket_id": ticket.id, "user_id": request.user_id}},
            )
            await reply(request, responder, "❌ У тебя нет доступа к этому обращению")
            return

        if action == "view":
            text = (
                f"📄 Обращение #{ticket.id}\n\n"
                f"Тема: {ticket.subject}\n"
                f"Статус: {STATUS_LABELS[ticket.status]}\n"
                f"Создано: {ticket.created_at.strftime(DATETIME_FORMAT)}\n\n"
                f"Твоё сообщение:\n{ticket.message}\n\n"
            )
            text += f"📤 Ответ:\n{ticket.response}\n\n" if ticket.response else "⏳ Ожидаем ответа...\n\n"
            if ticket.user_reply:
                text += f"📥 Твои ответы:\n{ticket.user_reply}\n\n"

            keyboard = Keyboard()
            if ticket.response and ticket.is_open:
                label = "✍️ Ответить снова" if ticket.user_reply else "✍️ Ответить на ответ"
                keyboard.row(Button(label, f"myticket:reply:{ticket.id}", ButtonIntent.POSITIVE))
            await reply(request, responder, text, keyboard=keyboard)
        elif action == "reply":
            if not ticket.is_open:
                await reply(request, responder, "❌ Обращение уже закрыто")
                return
            self.wizard.start(request.state, **{REPLY_TARGET_KEY: ticket.id})
            await reply(request, responder, "✍️ Напиши свой ответ на обращение:")

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

        text = self.wizard.values(state)["reply"]
        try:
            ticket = self.support.add_user_reply(ticket_id, text)
        except NotFoundError:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Обращение не найдено")
            return

        if ticket.response_by:
            await notify(
                responder,
                ticket.response_by,
                f"📬 Новый ответ на обращение #{ticket.id}\n\n"
                f"Тема: {ticket.subject}\n"
                f"От пользователя: {ticket.user_id}\n\n"
                f"Ответ:\n{text}\n\n"
                "Используй /tickets чтобы ответить.",
            )
        self.wizard.finish(state)
        await reply(
            request,
            responder,
            f"✅ Твой ответ на обращение #{ticket.id} сохранён!\n\n"
            f"Ответ:\n{text}\n\n"
            "Руководитель получит уведомление о твоём ответе.",
        )

from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import Responder
from campus_bot.services.support_service import SupportService

USAGE = (
    "Чтобы отправить обращение, напиши /contact <тема>:<сообщение>.\n"
    "Например: /contact Справка:Нужна справка для военкомата."
)


class ContactHandler(Handler):
    """/contact <subject>:<message> opens a support ticket."""

    def __init__(self, support: SupportService):
        self.support = support

    async def handle(self, request: Request, responder: Responder) -> None:
        args = request.args.strip()
        if not args:
            await reply(request, responder, USAGE)
            return

        subject, sep, body = args.partition(":")
        if not sep:
            await reply(
                request,
                responder,
                "Пожалуйста, укажи тему и сообщение через двоеточие. "
                "Пример: /contact Стипендия:Не пришла стипендия за ноябрь.",
            )
            return

        subject, body = subject.strip(), body.strip()
        if not subject or not body:
            await reply(request, responder, "Тема и текст обращения не могут быть пустыми. Попробуй ещё раз.")
            return

        ticket = self.support.create_ticket(request.user_id, subject, body)
        await reply(
            request,
            responder,
            f"✅ Обращение отправлено в {ticket.department}.\n"
            f"Номер заявки: {ticket.id}\n"
            f"Тема: {ticket.subject}\n"
            f"Статус: {ticket.status.value}\n\n"
            "Мы вернёмся с ответом в течение рабочего дня. Следить за ответом можно через /mytickets.",
        )

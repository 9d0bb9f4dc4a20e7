from campus_bot.bot.handler import Handler, Request, ack, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.services.deanery_service import (
    DOCUMENT_DESCRIPTIONS,
    DOCUMENT_STATUS_LABELS,
    DOCUMENT_TYPE_LABELS,
    DeaneryService,
    DocumentType,
)

CALLBACK_PREFIX = "doc:"


def services_keyboard() -> Keyboard:
    keyboard = Keyboard()
    keyboard.row(
        Button("📄 Справка", "doc:certificate", ButtonIntent.POSITIVE),
        Button("💳 Оплата обучения", "doc:payment", ButtonIntent.POSITIVE),
    )
    keyboard.row(
        Button("🔄 Перевод", "doc:transfer"),
        Button("📋 Академический отпуск", "doc:academic_leave"),
    )
    return keyboard


class DeaneryHandler(Handler):
    """/deanery: file document requests and follow their status."""

    def __init__(self, deanery: DeaneryService):
        self.deanery = deanery

    async def handle(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return
        if request.is_callback:
            await self._create_request(request, responder)
            return

        lines = ["🏛️ Деканат\n", "Доступные услуги:"]
        documents = self.deanery.list_user_documents(request.user_id)
        if documents:
            lines.append("\n📋 Твои заявления:")
            for doc in documents:
                lines.append(f"{DOCUMENT_TYPE_LABELS[doc.type]} #{doc.id}: {DOCUMENT_STATUS_LABELS[doc.status]}")
                if doc.response:
                    lines.append(f"   Ответ: {doc.response}")
        await reply(request, responder, "\n".join(lines), keyboard=services_keyboard())

    async def _create_request(self, request: Request, responder: Responder) -> None:
        await ack(request, responder)
        raw_type = request.args[len(CALLBACK_PREFIX) :]
        try:
            doc_type = DocumentType(raw_type)
        except ValueError:
            await reply(request, responder, "❌ Неизвестный тип документа")
            return

        doc = self.deanery.create_document(request.user_id, doc_type, DOCUMENT_DESCRIPTIONS[doc_type])
        await reply(
            request,
            responder,
            "✅ Заявление создано!\n\n"
            f"Тип: {DOCUMENT_TYPE_LABELS[doc.type]}\n"
            f"Номер: {doc.id}\n"
            f"Статус: {DOCUMENT_STATUS_LABELS[doc.status]}\n\n"
            "Твоё заявление будет рассмотрено в ближайшее время.",
        )

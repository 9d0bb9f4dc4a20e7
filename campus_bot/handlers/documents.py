from campus_bot.bot.handler import Handler, Request, ack, notify, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.bot.wizard import Wizard, WizardStep
from campus_bot.handlers.common import DATETIME_FORMAT, preview, require_capability, split_callback
from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import STEP_DOC_RESPONSE
from campus_bot.services.capabilities import Capability
from campus_bot.services.deanery_service import DOCUMENT_TYPE_LABELS, DeaneryService, DocumentStatus
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.result import Result
from campus_bot.services.user_service import UserService

logger = get_logger("documents")

CALLBACK_PREFIX = "doc_admin:"
REPLY_TARGET_KEY = "replying_to_doc"


def document_reply(text: str, file_ref: str) -> Result[tuple[str, str]]:
    """A document answer is either text or a file, never both and never neither."""
    text = text.strip()
    if not text and not file_ref:
        return Result.failure("❌ Ответ не может быть пустым. Отправь либо текст, либо файл.", "empty")
    if text and file_ref:
        return Result.failure(
            "❌ Можно отправить либо только текст, либо только файл. "
            "Нельзя отправлять и то, и другое одновременно.",
            "text_and_file",
        )
    return Result.success((text, file_ref))


class DocumentsHandler(Handler):
    """/documents: staff queue of pending deanery requests."""

    def __init__(self, deanery: DeaneryService, users: UserService):
        self.deanery = deanery
        self.users = users
        # the single input is validated by document_reply since it may be a file
        self.wizard = Wizard(
            "doc_response",
            [WizardStep("response")],
            step_tag=STEP_DOC_RESPONSE,
            context_keys=(REPLY_TARGET_KEY,),
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        user = await require_capability(
            self.users, request, responder, Capability.DOCUMENTS, "❌ Эта команда доступна только руководителям."
        )
        if user is None:
            return

        if request.is_callback:
            await self._handle_callback(request, responder)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_reply(request, responder)
        else:
            await self._show_pending(request, responder)

    async def _show_pending(self, request: Request, responder: Responder) -> None:
        pending = [d for d in self.deanery.list_documents() if d.status == DocumentStatus.PENDING]
        if not pending:
            await reply(request, responder, "📋 Заявления деканата\n\n✅ Нет заявлений на рассмотрении.")
            return

        keyboard = Keyboard()
        lines = ["📋 Заявления деканата\n", f"На рассмотрении: {len(pending)}\n"]
        for doc in pending:
            label = DOCUMENT_TYPE_LABELS[doc.type]
            lines.append(f"• #{doc.id}: {label} (от {doc.user_id})")
            keyboard.row(Button(f"📄 {preview(label + ' #' + doc.id)}", f"doc_admin:view:{doc.id}"))
        await reply(request, responder, "\n".join(lines), keyboard=keyboard)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        action, doc_id = split_callback(request.args, CALLBACK_PREFIX)
        await ack(request, responder)

        doc = self.deanery.get_document(doc_id) if doc_id else None
        if doc is None:
            await reply(request, responder, "❌ Заявление не найдено")
            return

        if action == "view":
            text = (
                f"📄 Заявление #{doc.id}\n\n"
                f"Тип: {DOCUMENT_TYPE_LABELS[doc.type]}\n"
                f"От пользователя: {doc.user_id}\n"
                f"Статус: {doc.status.value}\n"
                f"Создано: {doc.created_at.strftime(DATETIME_FORMAT)}\n\n"
                f"Описание:\n{doc.description}\n\n"
            )
            text += f"📤 Ответ:\n{doc.response}\n\n" if doc.response else "⏳ Ожидает обработки\n\n"
            keyboard = Keyboard()
            if doc.status == DocumentStatus.PENDING:
                keyboard.row(Button("✍️ Ответить", f"doc_admin:reply:{doc.id}", ButtonIntent.POSITIVE))
            await reply(request, responder, text, keyboard=keyboard)
        elif action == "reply":
            self.wizard.start(request.state, **{REPLY_TARGET_KEY: doc.id})
            await reply(
                request,
                responder,
                "✍️ Напиши ответ на заявление:\n\n"
                "Отправь либо только текст, либо только файл (нельзя отправлять и то, и другое одновременно).",
            )

    async def _handle_reply(self, request: Request, responder: Responder) -> None:
        state = request.state
        doc_id = self.wizard.context(state, REPLY_TARGET_KEY)
        if not doc_id:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Ошибка: не найден ID заявления")
            return

        result = document_reply(request.args, request.event.file_reference())
        if not result.ok:
            await reply(request, responder, result.error)
            return

        text, file_ref = result.value
        try:
            doc = self.deanery.add_response(doc_id, text, file_ref, request.user_id)
        except NotFoundError:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Заявление не найдено")
            return

        notification = f"✅ Ответ на твоё заявление #{doc.id}\n\nТип: {DOCUMENT_TYPE_LABELS[doc.type]}\n\n"
        if text:
            notification += f"Ответ:\n{text}\n\n"
        if file_ref:
            notification += "📎 К заявлению приложен файл.\n\n"
        notification += "Используй /deanery чтобы посмотреть все свои заявления."
        await notify(responder, doc.user_id, notification, attachment_token=file_ref or None)

        self.wizard.finish(state)
        confirmation = f"✅ Ответ на заявление #{doc.id} сохранён!\n\n"
        if text:
            confirmation += f"Ответ:\n{text}\n\n"
        if file_ref:
            confirmation += "📎 Файл приложен.\n\n"
        await reply(request, responder, confirmation + "Пользователь получит уведомление.")

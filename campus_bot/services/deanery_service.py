import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from campus_bot.logging_config import get_logger
from campus_bot.services.exceptions import NotFoundError

logger = get_logger("deanery_service")


class DocumentType(str, Enum):
    CERTIFICATE = "certificate"
    PAYMENT = "payment"
    TRANSFER = "transfer"
    ACADEMIC_LEAVE = "academic_leave"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


DOCUMENT_TYPE_LABELS = {
    DocumentType.CERTIFICATE: "Справка",
    DocumentType.PAYMENT: "Оплата обучения",
    DocumentType.TRANSFER: "Перевод",
    DocumentType.ACADEMIC_LEAVE: "Академический отпуск",
}

DOCUMENT_DESCRIPTIONS = {
    DocumentType.CERTIFICATE: "Запрос на получение справки",
    DocumentType.PAYMENT: "Запрос на оплату обучения",
    DocumentType.TRANSFER: "Заявление на перевод",
    DocumentType.ACADEMIC_LEAVE: "Заявление на академический отпуск",
}

DOCUMENT_STATUS_LABELS = {
    DocumentStatus.PENDING: "⏳ На рассмотрении",
    DocumentStatus.APPROVED: "✅ Одобрено",
    DocumentStatus.REJECTED: "❌ Отклонено",
    DocumentStatus.COMPLETED: "📄 Готово",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Document:
    id: str
    user_id: str
    type: DocumentType
    description: str
    status: DocumentStatus = DocumentStatus.PENDING
    response: str = ""
    response_file: str = ""
    response_by: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


class DeaneryService:
    """Document requests filed by students and answered by deanery staff."""

    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def create_document(self, user_id: str, doc_type: DocumentType, description: str) -> Document:
        now = _now()
        with self._lock:
            document = Document(
                id=f"DOC-{int(now.timestamp())}-{next(self._seq)}",
                user_id=user_id,
                type=doc_type,
                description=description,
                created_at=now,
                updated_at=now,
            )
            self._documents[document.id] = document
        logger.info(f"Document request created: {document.id}", extra={"context": {"type": doc_type.value}})
        return replace(document)

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._lock:
            document = self._documents.get(document_id)
            return replace(document) if document else None

    def list_documents(self) -> list[Document]:
        with self._lock:
            documents = [replace(d) for d in self._documents.values()]
        return sorted(documents, key=lambda d: d.created_at)

    def list_user_documents(self, user_id: str) -> list[Document]:
        return [d for d in self.list_documents() if d.user_id == user_id]

    def add_response(self, document_id: str, response: str, response_file: str, response_by: str) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise NotFoundError("document", document_id)
            document.response = response
            document.response_file = response_file
            document.response_by = response_by
            document.status = DocumentStatus.COMPLETED
            document.updated_at = _now()
            return replace(document)

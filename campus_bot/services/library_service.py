import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from campus_bot.logging_config import get_logger
from campus_bot.services.exceptions import NotFoundError

logger = get_logger("library_service")

LOAN_PERIOD = timedelta(days=30)


class LoanStatus(str, Enum):
    REQUESTED = "requested"
    ISSUED = "issued"
    TAKEN = "taken"
    RETURNED = "returned"


ACTIVE_LOAN_STATUSES = {LoanStatus.REQUESTED, LoanStatus.ISSUED, LoanStatus.TAKEN}

LOAN_STATUS_LABELS = {
    LoanStatus.REQUESTED: "⏳ Запрошена",
    LoanStatus.ISSUED: "✅ Готова к выдаче",
    LoanStatus.TAKEN: "📖 У тебя",
    LoanStatus.RETURNED: "📚 Возвращена",
}


class BookUnavailableError(Exception):
    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"book is on loan: {book_id}")


@dataclass(frozen=True)
class Book:
    id: str
    title: str
    author: str
    isbn: str


DEFAULT_CATALOGUE = (
    Book("1", "Введение в алгоритмы", "Томас Кормен", "978-5-8459-0857-4"),
    Book("2", "Чистый код", "Роберт Мартин", "978-5-4461-0772-1"),
    Book("3", "Архитектура компьютера", "Эндрю Таненбаум", "978-5-4461-1234-3"),
    Book("4", "Дизайн паттерны", "Gang of Four", "978-5-459-00401-2"),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Loan:
    """One copy of a book on its way to a reader and back."""

    id: str
    user_id: str
    book: Book
    borrower_name: str = ""
    status: LoanStatus = LoanStatus.REQUESTED
    requested_at: datetime = field(default_factory=_now)
    return_due: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    taken_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_LOAN_STATUSES


class LibraryService:
    """Book catalogue and loans: requested by readers, issued, taken and returned by library staff."""

    def __init__(
        self,
        catalogue: Iterable[Book] = DEFAULT_CATALOGUE,
        clock: Callable[[], datetime] = _now,
    ):
        self._books: dict[str, Book] = {book.id: book for book in catalogue}
        self._loans: dict[str, Loan] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._clock = clock

    def get_book(self, book_id: str) -> Optional[Book]:
        return self._books.get(book_id)

    def list_available(self) -> list[Book]:
        """Books nobody has requested, been issued or is holding."""
        with self._lock:
            on_loan = {loan.book.id for loan in self._loans.values() if loan.is_active}
        return [book for book_id, book in sorted(self._books.items()) if book_id not in on_loan]

    def borrow_book(self, user_id: str, book_id: str, borrower_name: str = "") -> Loan:
        book = self._books.get(book_id)
        if book is None:
            raise NotFoundError("book", book_id)

        now = self._clock()
        with self._lock:
            if any(loan.book.id == book_id and loan.is_active for loan in self._loans.values()):
                raise BookUnavailableError(book_id)
            loan = Loan(
                id=f"UB-{int(now.timestamp())}-{next(self._seq)}",
                user_id=user_id,
                book=book,
                borrower_name=borrower_name,
                requested_at=now,
                return_due=now + LOAN_PERIOD,
            )
            self._loans[loan.id] = loan
        logger.info(f"Book requested: {book_id}", extra={"context": {"user_id": user_id, "loan_id": loan.id}})
        return replace(loan)

    def list_user_loans(self, user_id: str) -> list[Loan]:
        return [loan for loan in self.list_active_loans() if loan.user_id == user_id]

    def list_active_loans(self) -> list[Loan]:
        with self._lock:
            loans = [replace(loan) for loan in self._loans.values() if loan.is_active]
        return sorted(loans, key=lambda loan: loan.requested_at)

    def issue_book(self, user_id: str, book_id: str) -> Loan:
        return self._advance(user_id, book_id, LoanStatus.REQUESTED, LoanStatus.ISSUED)

    def mark_taken(self, user_id: str, book_id: str) -> Loan:
        return self._advance(user_id, book_id, LoanStatus.ISSUED, LoanStatus.TAKEN)

    def mark_returned(self, user_id: str, book_id: str) -> Loan:
        return self._advance(user_id, book_id, LoanStatus.TAKEN, LoanStatus.RETURNED)

    def _advance(self, user_id: str, book_id: str, current: LoanStatus, target: LoanStatus) -> Loan:
        now = self._clock()
        with self._lock:
            loan = next(
                (
                    loan
                    for loan in self._loans.values()
                    if loan.user_id == user_id and loan.book.id == book_id and loan.status == current
                ),
                None,
            )
            if loan is None:
                raise NotFoundError(f"{current.value} loan", f"{user_id}:{book_id}")
            loan.status = target
            if target == LoanStatus.ISSUED:
                loan.issued_at = now
            elif target == LoanStatus.TAKEN:
                loan.taken_at = now
        logger.info(
            f"Loan {loan.id} {current.value} -> {target.value}",
            extra={"context": {"user_id": user_id, "book_id": book_id}},
        )
        return replace(loan)

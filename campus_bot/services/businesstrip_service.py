import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum

from campus_bot.logging_config import get_logger

logger = get_logger("businesstrip_service")


class TripStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


TRIP_STATUS_ICONS = {
    TripStatus.PENDING: "⏳",
    TripStatus.APPROVED: "✅",
    TripStatus.REJECTED: "❌",
    TripStatus.COMPLETED: "✅",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Trip:
    id: str
    user_id: str
    destination: str
    purpose: str
    start_date: date
    end_date: date
    status: TripStatus = TripStatus.PENDING
    created_at: datetime = field(default_factory=_now)


class BusinessTripService:
    """Business trip requests filed by employees."""

    def __init__(self):
        self._trips: dict[str, Trip] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def create_trip(self, user_id: str, destination: str, purpose: str, start_date: date, end_date: date) -> Trip:
        if end_date < start_date:
            raise ValueError("trip ends before it starts")
        now = _now()
        with self._lock:
            trip = Trip(
                id=f"TRIP-{int(now.timestamp())}-{next(self._seq)}",
                user_id=user_id,
                destination=destination,
                purpose=purpose,
                start_date=start_date,
                end_date=end_date,
                created_at=now,
            )
            self._trips[trip.id] = trip
        logger.info(f"Business trip requested: {trip.id}", extra={"context": {"user_id": user_id}})
        return replace(trip)

    def list_user_trips(self, user_id: str) -> list[Trip]:
        with self._lock:
            trips = [replace(t) for t in self._trips.values() if t.user_id == user_id]
        return sorted(trips, key=lambda t: t.start_date)

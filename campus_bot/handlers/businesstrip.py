from datetime import date, datetime

from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import Responder
from campus_bot.services.businesstrip_service import TRIP_STATUS_ICONS, BusinessTripService
from campus_bot.services.result import Result

DATE_FORMAT = "%d.%m.%Y"

USAGE = (
    "Для оформления новой командировки напиши:\n"
    "/businesstrip <куда>:<цель>:<ДД.ММ.ГГГГ>-<ДД.ММ.ГГГГ>\n"
    "Например: /businesstrip Казань:Конференция по ИИ:01.04.2025-03.04.2025"
)


def _parse_date(value: str) -> Result[date]:
    try:
        return Result.success(datetime.strptime(value.strip(), DATE_FORMAT).date())
    except ValueError:
        return Result.failure(f"❌ Неверная дата: {value.strip()}. Используй формат ДД.ММ.ГГГГ", "bad_date")


def parse_period(value: str) -> Result[tuple[date, date]]:
    start_raw, sep, end_raw = value.partition("-")
    if not sep:
        return Result.failure("❌ Укажи даты через дефис: ДД.ММ.ГГГГ-ДД.ММ.ГГГГ", "bad_period")
    start = _parse_date(start_raw)
    if not start.ok:
        return Result.failure(start.error, start.error_code)
    return _parse_date(end_raw).then(lambda end: _ordered(start.value, end))


def _ordered(start: date, end: date) -> Result[tuple[date, date]]:
    if end < start:
        return Result.failure("❌ Дата окончания раньше даты начала", "reversed_period")
    return Result.success((start, end))


class BusinessTripHandler(Handler):
    """/businesstrip: list own trips; with arguments, file a new trip request."""

    def __init__(self, trips: BusinessTripService):
        self.trips = trips

    async def handle(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return
        if request.args.strip():
            await self._create(request, responder)
        else:
            await self._show_trips(request, responder)

    async def _show_trips(self, request: Request, responder: Responder) -> None:
        trips = self.trips.list_user_trips(request.user_id)
        text = "✈️ Командировки\n\n"
        if trips:
            text += "📋 Твои командировки:\n\n"
            for trip in trips:
                text += (
                    f"{TRIP_STATUS_ICONS.get(trip.status, '📄')} {trip.destination}\n"
                    f"   {trip.start_date.strftime(DATE_FORMAT)} - {trip.end_date.strftime(DATE_FORMAT)}\n"
                    f"   Статус: {trip.status.value}\n\n"
                )
        else:
            text += "У тебя пока нет командировок.\n\n"
        await reply(request, responder, text + USAGE)

    async def _create(self, request: Request, responder: Responder) -> None:
        parts = [part.strip() for part in request.args.split(":", 2)]
        if len(parts) != 3 or not all(parts):
            await reply(request, responder, "❌ Укажи место, цель и даты через двоеточие.\n\n" + USAGE)
            return

        destination, purpose, period = parts
        parsed = parse_period(period)
        if not parsed.ok:
            await reply(request, responder, parsed.error)
            return

        start, end = parsed.value
        trip = self.trips.create_trip(request.user_id, destination, purpose, start, end)
        await reply(
            request,
            responder,
            "✅ Заявка на командировку создана!\n\n"
            f"Номер: {trip.id}\n"
            f"Куда: {trip.destination}\n"
            f"Цель: {trip.purpose}\n"
            f"Даты: {trip.start_date.strftime(DATE_FORMAT)} - {trip.end_date.strftime(DATE_FORMAT)}\n"
            f"Статус: {trip.status.value}",
        )

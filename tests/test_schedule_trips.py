import asyncio
from datetime import date, datetime, timezone

import pytest

from campus_bot.handlers.businesstrip import USAGE, parse_period
from campus_bot.services.businesstrip_service import BusinessTripService, TripStatus
from campus_bot.services.schedule_service import ScheduleService
from campus_bot.services.user_service import Role

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class TestScheduleService:
    def test_items_are_relative_to_now(self):
        items = asyncio.run(ScheduleService(clock=lambda: NOW).get_schedule("u1"))
        assert [item.starts_at.strftime("%H:%M") for item in items] == ["11:00", "14:00"]
        assert items[0].discipline == "Мат. анализ"


class TestScheduleHandler:
    @pytest.mark.parametrize("command", ["/schedule", "/myschedule"])
    def test_lists_today(self, run, responder, message_event, command):
        run(message_event("u1", command))
        text = responder.texts[-1]
        assert text.startswith("📅 Ваше расписание на сегодня:")
        assert "Мат. анализ" in text
        assert "Корпус Б, ауд. 115" in text

    def test_empty_schedule(self, run, services, responder, message_event, monkeypatch):
        async def nothing(user_id):
            return []

        monkeypatch.setattr(services.schedule, "get_schedule", nothing)
        run(message_event("u1", "/schedule"))
        assert responder.texts[-1].startswith("Расписание на сегодня пустое.")


class TestParsePeriod:
    def test_valid(self):
        assert parse_period("01.04.2025-03.04.2025").value == (date(2025, 4, 1), date(2025, 4, 3))

    @pytest.mark.parametrize(
        "value,code",
        [
            ("01.04.2025", "bad_period"),
            ("1 апреля-03.04.2025", "bad_date"),
            ("01.04.2025-завтра", "bad_date"),
            ("03.04.2025-01.04.2025", "reversed_period"),
        ],
    )
    def test_invalid(self, value, code):
        assert parse_period(value).error_code == code


class TestBusinessTripService:
    def test_new_trip_is_pending(self):
        trips = BusinessTripService()
        trip = trips.create_trip("e1", "Казань", "Конференция", date(2025, 4, 1), date(2025, 4, 3))
        assert trip.status == TripStatus.PENDING
        assert trips.list_user_trips("e1")[0].id == trip.id
        assert trips.list_user_trips("e2") == []

    def test_reversed_dates_rejected(self):
        with pytest.raises(ValueError):
            BusinessTripService().create_trip("e1", "Казань", "x", date(2025, 4, 3), date(2025, 4, 1))


class TestBusinessTripHandler:
    @pytest.fixture(autouse=True)
    def employee(self, add_user):
        add_user("e1", role=Role.EMPLOYEE, first_name="Ольга")

    def test_empty_list_shows_usage(self, run, responder, message_event):
        run(message_event("e1", "/businesstrip"))
        assert "У тебя пока нет командировок." in responder.texts[-1]
        assert responder.texts[-1].endswith(USAGE)

    def test_create_and_list(self, run, services, responder, message_event):
        run(message_event("e1", "/businesstrip Казань:Конференция по ИИ:01.04.2025-03.04.2025"))
        [trip] = services.trips.list_user_trips("e1")
        assert trip.destination == "Казань"
        assert trip.purpose == "Конференция по ИИ"
        assert (trip.start_date, trip.end_date) == (date(2025, 4, 1), date(2025, 4, 3))
        assert responder.texts[-1].startswith("✅ Заявка на командировку создана!")

        run(message_event("e1", "/businesstrip"))
        assert "⏳ Казань\n   01.04.2025 - 03.04.2025\n   Статус: pending" in responder.texts[-1]

    def test_missing_parts(self, run, services, responder, message_event):
        run(message_event("e1", "/businesstrip Казань"))
        assert services.trips.list_user_trips("e1") == []
        assert responder.texts[-1].startswith("❌ Укажи место, цель и даты через двоеточие.")

    def test_bad_dates(self, run, services, responder, message_event):
        run(message_event("e1", "/businesstrip Казань:Конференция:03.04.2025-01.04.2025"))
        assert services.trips.list_user_trips("e1") == []
        assert responder.texts[-1] == "❌ Дата окончания раньше даты начала"

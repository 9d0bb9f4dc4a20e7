import asyncio
from datetime import datetime, timedelta

import pytest

from campus_bot.bot.dispatcher import Dispatcher
from campus_bot.bot.router import CallbackTable, CommandTable, Router
from campus_bot.handlers.menu import FallbackHandler
from campus_bot.handlers.reminder import ReminderHandler, parse_time
from campus_bot.schemas.reminder import DueRemindersResponse, ReminderItem, ScanResponse
from campus_bot.services.reminder_service import (
    REMINDER_TEMPLATE,
    ReminderService,
    ReminderStatus,
    scan_due_reminders,
)

NOW = datetime(2025, 3, 10, 12, 0)


@pytest.fixture
def reminders():
    return ReminderService(clock=lambda: NOW)


@pytest.fixture
def reminder_dispatcher(reminders, store, responder):
    handler = ReminderHandler(reminders, clock=lambda: NOW)
    router = Router(
        CommandTable([("/reminder", handler)], fallback=FallbackHandler()),
        CallbackTable([("reminder:*", handler)]),
    )
    return Dispatcher(router, store, responder)


@pytest.fixture
def send(reminder_dispatcher):
    def _send(*events):
        async def _run():
            for event in events:
                await reminder_dispatcher.dispatch(event)

        asyncio.run(_run())

    return _send


class TestReminderSchemas:
    def test_reminder_item_valid(self):
        item = ReminderItem(
            reminder_id="REM-1", user_id="u1", text="Сдать отчёт", due_at=NOW, status="active", minutes_overdue=5
        )
        assert item.minutes_overdue == 5

    def test_due_response_valid(self):
        assert DueRemindersResponse(count=0, reminders=[]).count == 0

    def test_scan_response_from_summary(self):
        summary = {"total": 1, "sent": 1, "failed": 0, "details": [{"reminder_id": "REM-1", "success": True}]}
        response = ScanResponse(**summary)
        assert response.details[0].success is True


class TestReminderService:
    def test_due_selection(self, reminders):
        past = reminders.create_reminder("u1", "прошлое", NOW - timedelta(minutes=1))
        reminders.create_reminder("u1", "будущее", NOW + timedelta(hours=1))
        assert [r.id for r in reminders.list_due()] == [past.id]

    def test_cancelled_is_not_due(self, reminders):
        reminder = reminders.create_reminder("u1", "x", NOW - timedelta(minutes=1))
        reminders.cancel_reminder(reminder.id)
        assert reminders.list_due() == []
        assert reminders.list_active_user_reminders("u1") == []

    def test_lists_sorted_by_due_time(self, reminders):
        later = reminders.create_reminder("u1", "later", NOW + timedelta(days=2))
        sooner = reminders.create_reminder("u1", "sooner", NOW + timedelta(days=1))
        assert [r.id for r in reminders.list_user_reminders("u1")] == [sooner.id, later.id]


class TestScanDueReminders:
    def test_sends_and_completes(self, reminders, responder):
        reminder = reminders.create_reminder("u1", "Пара в 14:00", NOW - timedelta(minutes=1))

        results = asyncio.run(scan_due_reminders(reminders, responder, now=NOW))

        assert results["total"] == 1
        assert results["sent"] == 1
        assert results["failed"] == 0
        assert responder.sent[0]["text"] == REMINDER_TEMPLATE.format(text="Пара в 14:00")
        assert responder.sent[0]["markdown"] is True
        assert reminders.get_reminder(reminder.id).status == ReminderStatus.COMPLETED

    def test_failed_send_stays_active(self, reminders, responder):
        reminder = reminders.create_reminder("u1", "x", NOW - timedelta(minutes=1))
        responder.failing_users.add("u1")

        results = asyncio.run(scan_due_reminders(reminders, responder, now=NOW))

        assert results["failed"] == 1
        assert reminders.get_reminder(reminder.id).status == ReminderStatus.ACTIVE

        responder.failing_users.clear()
        assert asyncio.run(scan_due_reminders(reminders, responder, now=NOW))["sent"] == 1

    def test_delivered_once(self, reminders, responder):
        reminders.create_reminder("u1", "x", NOW - timedelta(minutes=1))
        asyncio.run(scan_due_reminders(reminders, responder, now=NOW))
        second = asyncio.run(scan_due_reminders(reminders, responder, now=NOW))
        assert second["total"] == 0
        assert len(responder.sent) == 1


class TestParseTime:
    def test_valid(self):
        assert parse_time("9:05").value == (9, 5)

    @pytest.mark.parametrize(
        "value,code",
        [("1430", "bad_format"), ("24:00", "bad_hour"), ("ab:10", "bad_hour"), ("10:60", "bad_minute")],
    )
    def test_invalid(self, value, code):
        assert parse_time(value).error_code == code


class TestReminderFlow:
    def test_create_with_quick_pick(self, send, reminders, load_state, responder, message_event, callback_event):
        send(
            callback_event("u1", "reminder:create"),
            message_event("u1", "Сдать курсовую"),
        )
        assert load_state("u1").step == "reminder_create"
        quick_picks = [b.payload for row in responder.sent[-1]["keyboard"].rows for b in row]
        assert quick_picks == [
            "reminder:date:10.03.2025",
            "reminder:date:11.03.2025",
            "reminder:date:17.03.2025",
            "reminder:date:custom",
        ]

        send(callback_event("u1", "reminder:date:11.03.2025"), message_event("u1", "09:30"))

        [reminder] = reminders.list_user_reminders("u1")
        assert reminder.text == "Сдать курсовую"
        assert reminder.due_at == datetime(2025, 3, 11, 9, 30)
        state = load_state("u1")
        assert state.step == ""
        assert state.data == {}

    def test_custom_date_typed(self, send, reminders, message_event, callback_event):
        send(
            callback_event("u1", "reminder:create"),
            message_event("u1", "Экзамен"),
            callback_event("u1", "reminder:date:custom"),
            message_event("u1", "20.06.2025"),
            message_event("u1", "10:00"),
        )
        [reminder] = reminders.list_user_reminders("u1")
        assert reminder.due_at == datetime(2025, 6, 20, 10, 0)

    def test_past_date_rejected(self, send, load_state, responder, message_event, callback_event):
        send(
            callback_event("u1", "reminder:create"),
            message_event("u1", "x"),
            message_event("u1", "09.03.2025"),
        )
        assert "прошедшую дату" in responder.texts[-1]
        assert "date" not in load_state("u1").data

    def test_bad_date_format(self, send, load_state, responder, message_event, callback_event):
        send(callback_event("u1", "reminder:create"), message_event("u1", "x"), message_event("u1", "завтра"))
        assert "ДД.ММ.ГГГГ" in responder.texts[-1]
        assert load_state("u1").step == "reminder_create"

    def test_past_time_today_rejected(self, send, reminders, load_state, responder, message_event, callback_event):
        send(
            callback_event("u1", "reminder:create"),
            message_event("u1", "x"),
            callback_event("u1", "reminder:date:10.03.2025"),
            message_event("u1", "11:59"),
        )
        assert "прошедшее время" in responder.texts[-1]
        assert reminders.list_user_reminders("u1") == []
        assert load_state("u1").data["date"] == "10.03.2025"

    def test_quick_pick_outside_flow(self, send, responder, callback_event):
        send(callback_event("u1", "reminder:date:11.03.2025"))
        assert "не начато" in responder.texts[-1]

    def test_command_leaves_flow_untouched(self, send, load_state, message_event, callback_event):
        send(callback_event("u1", "reminder:create"), message_event("u1", "/reminder"))
        assert load_state("u1").step == "reminder_create"


class TestReminderMenu:
    def test_menu_shows_active(self, send, reminders, responder, message_event):
        reminders.create_reminder("u1", "Позвонить в деканат", NOW + timedelta(days=1))
        send(message_event("u1", "/reminder"))
        assert "Позвонить в деканат" in responder.texts[-1]
        payloads = [b.payload for row in responder.sent[-1]["keyboard"].rows for b in row]
        assert payloads == ["reminder:create", "reminder:list"]

    def test_full_list_marks_status(self, send, reminders, responder, callback_event):
        done = reminders.create_reminder("u1", "Готово", NOW + timedelta(days=1))
        reminders.mark_completed(done.id)
        reminders.create_reminder("u1", "Ждёт", NOW + timedelta(days=2))
        send(callback_event("u1", "reminder:list"))
        text = responder.texts[-1]
        assert "✅ **Готово**" in text
        assert "⏰ **Ждёт**" in text

    def test_full_list_offers_cancel_for_active_only(self, send, reminders, responder, callback_event):
        done = reminders.create_reminder("u1", "Готово", NOW + timedelta(days=1))
        reminders.mark_completed(done.id)
        waiting = reminders.create_reminder("u1", "Ждёт", NOW + timedelta(days=2))
        send(callback_event("u1", "reminder:list"))
        payloads = [b.payload for row in responder.sent[-1]["keyboard"].rows for b in row]
        assert payloads == [f"reminder:cancel:{waiting.id}"]

    def test_cancel_button(self, send, reminders, responder, callback_event):
        reminder = reminders.create_reminder("u1", "Сдать отчёт", NOW + timedelta(days=1))
        send(callback_event("u1", f"reminder:cancel:{reminder.id}"))
        assert reminders.get_reminder(reminder.id).status == ReminderStatus.CANCELLED
        assert responder.texts[-1] == "❌ Напоминание отменено: Сдать отчёт"
        assert reminders.list_due(NOW + timedelta(days=2)) == []

    def test_cannot_cancel_foreign_reminder(self, send, reminders, responder, callback_event):
        reminder = reminders.create_reminder("u2", "Чужое", NOW + timedelta(days=1))
        send(callback_event("u1", f"reminder:cancel:{reminder.id}"))
        assert reminders.get_reminder(reminder.id).status == ReminderStatus.ACTIVE
        assert responder.texts[-1] == "❌ Напоминание не найдено"

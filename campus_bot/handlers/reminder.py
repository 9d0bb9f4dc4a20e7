from datetime import datetime, timedelta
from typing import Callable

from campus_bot.bot.handler import Handler, Request, ack, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep, required_text
from campus_bot.handlers.common import DATETIME_FORMAT, preview
from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import STEP_REMINDER_CREATE
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.reminder_service import ReminderService, ReminderStatus
from campus_bot.services.result import Result

logger = get_logger("reminder")

CALLBACK_PREFIX = "reminder:"
CALLBACK_CREATE = "reminder:create"
CALLBACK_LIST = "reminder:list"
CALLBACK_DATE = "reminder:date:"
CALLBACK_CANCEL = "reminder:cancel:"
CUSTOM_DATE = "custom"

DATE_FORMAT = "%d.%m.%Y"
MENU_PREVIEW_COUNT = 5
LIST_LIMIT = 10

STATUS_ICONS = {
    ReminderStatus.ACTIVE: "⏰",
    ReminderStatus.COMPLETED: "✅",
    ReminderStatus.CANCELLED: "❌",
}


def parse_time(value: str) -> Result[tuple[int, int]]:
    parts = value.split(":")
    if len(parts) != 2:
        return Result.failure("❌ Неверный формат времени. Используй формат ЧЧ:ММ (например, 14:30)", "bad_format")
    try:
        hour = int(parts[0])
    except ValueError:
        hour = -1
    if not 0 <= hour <= 23:
        return Result.failure("❌ Неверный час. Используй значение от 0 до 23.", "bad_hour")
    try:
        minute = int(parts[1])
    except ValueError:
        minute = -1
    if not 0 <= minute <= 59:
        return Result.failure("❌ Неверная минута. Используй значение от 0 до 59.", "bad_minute")
    return Result.success((hour, minute))


class ReminderHandler(Handler):
    """/reminder: menu of active reminders and a text -> date -> time creation flow."""

    def __init__(self, reminders: ReminderService, clock: Callable[[], datetime] = datetime.now):
        self.reminders = reminders
        self._clock = clock
        self.wizard = Wizard(
            "reminder_create",
            [
                WizardStep("text", validate=required_text("❌ Текст не может быть пустым. Попробуй снова.")),
                WizardStep("date", validate=self._validate_date, accepts_choice=True),
                WizardStep("time", validate=self._validate_time),
            ],
            step_tag=STEP_REMINDER_CREATE,
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        if request.is_callback:
            await self._handle_callback(request, responder)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_input(request, responder)
        else:
            await self._show_menu(request, responder)

    async def _show_menu(self, request: Request, responder: Responder) -> None:
        active = self.reminders.list_active_user_reminders(request.user_id)
        text = "⏰ **Напоминания**\n\n"
        if not active:
            text += "У тебя пока нет активных напоминаний.\n\n"
        else:
            text += f"**Активные напоминания ({len(active)}):**\n\n"
            for reminder in active[:MENU_PREVIEW_COUNT]:
                text += f"• {reminder.text}\n   📅 {reminder.due_at.strftime(DATETIME_FORMAT)}\n\n"
            if len(active) > MENU_PREVIEW_COUNT:
                text += f"... и ещё {len(active) - MENU_PREVIEW_COUNT}\n"

        keyboard = Keyboard().row(Button("➕ Создать напоминание", CALLBACK_CREATE, ButtonIntent.POSITIVE))
        if active:
            keyboard.row(Button("📋 Все напоминания", CALLBACK_LIST, ButtonIntent.POSITIVE))
        await reply(request, responder, text, keyboard=keyboard, markdown=True)

    async def _handle_input(self, request: Request, responder: Responder) -> None:
        outcome = self.wizard.accept_text(request.state, request.args)
        await self._after(request, responder, outcome)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        payload = request.args
        await ack(request, responder)

        if payload == CALLBACK_CREATE:
            self.wizard.start(request.state)
            await reply(
                request,
                responder,
                "⏰ **Создание напоминания**\n\n"
                "**Шаг 1 из 3: Введи текст напоминания**\n\n"
                "Напиши, о чём тебе напомнить:",
                markdown=True,
            )
        elif payload == CALLBACK_LIST:
            await self._show_all(request, responder)
        elif payload.startswith(CALLBACK_DATE):
            await self._pick_date(request, responder, payload[len(CALLBACK_DATE) :])
        elif payload.startswith(CALLBACK_CANCEL):
            await self._cancel(request, responder, payload[len(CALLBACK_CANCEL) :])

    async def _pick_date(self, request: Request, responder: Responder, value: str) -> None:
        state = request.state
        step = self.wizard.current(state)
        if step is None or step.name != "date":
            await reply(request, responder, "❌ Создание напоминания не начато. Используй /reminder")
            return
        if value == CUSTOM_DATE:
            await reply(
                request,
                responder,
                "✏️ **Введи дату**\n\nВведи дату в формате ДД.ММ.ГГГГ (например, 25.12.2024):",
                markdown=True,
            )
            return
        outcome = self.wizard.accept_choice(state, value)
        await self._after(request, responder, outcome)

    async def _after(self, request: Request, responder: Responder, outcome) -> None:
        if outcome.transition == Transition.STAY:
            await reply(request, responder, outcome.error or "❌ Текст не может быть пустым. Попробуй снова.")
        elif outcome.transition == Transition.ADVANCE and outcome.step.name == "date":
            await self._show_date_step(request, responder)
        elif outcome.transition == Transition.ADVANCE:
            await reply(
                request,
                responder,
                "✅ Дата сохранена.\n\n**Шаг 3 из 3: Введи время**\n\nВведи время в формате ЧЧ:ММ (например, 14:30):",
                markdown=True,
            )
        elif outcome.transition == Transition.COMPLETE:
            await self._create(request, responder)

    async def _show_date_step(self, request: Request, responder: Responder) -> None:
        today = self._clock().date()
        keyboard = Keyboard()
        for label, day in (
            ("Сегодня", today),
            ("Завтра", today + timedelta(days=1)),
            ("Через неделю", today + timedelta(days=7)),
        ):
            formatted = day.strftime(DATE_FORMAT)
            keyboard.row(Button(f"📅 {label} ({formatted})", CALLBACK_DATE + formatted, ButtonIntent.POSITIVE))
        keyboard.row(Button("✏️ Ввести свою дату", CALLBACK_DATE + CUSTOM_DATE, ButtonIntent.POSITIVE))
        await reply(
            request,
            responder,
            "✅ Текст напоминания сохранён.\n\n"
            "**Шаг 2 из 3: Выбери дату**\n\n"
            "Ты можешь выбрать быструю дату или ввести свою в формате ДД.ММ.ГГГГ:",
            keyboard=keyboard,
            markdown=True,
        )

    async def _create(self, request: Request, responder: Responder) -> None:
        values = self.wizard.values(request.state)
        due_at = self._due_at(values["date"], values["time"])
        reminder = self.reminders.create_reminder(request.user_id, values["text"], due_at)
        self.wizard.finish(request.state)
        await reply(
            request,
            responder,
            "✅ **Напоминание создано!**\n\n"
            f"**Текст:** {reminder.text}\n"
            f"**Дата и время:** {reminder.due_at.strftime(DATETIME_FORMAT)}\n\n"
            "Ты получишь напоминание в указанное время.",
            markdown=True,
        )

    async def _show_all(self, request: Request, responder: Responder) -> None:
        items = self.reminders.list_user_reminders(request.user_id)
        if not items:
            await reply(request, responder, "📋 У тебя пока нет напоминаний.", markdown=True)
            return
        text = f"📋 **Все напоминания ({len(items)}):**\n\n"
        keyboard = Keyboard()
        for reminder in items[:LIST_LIMIT]:
            icon = STATUS_ICONS.get(reminder.status, "✅")
            text += f"{icon} **{reminder.text}**\n   📅 {reminder.due_at.strftime(DATETIME_FORMAT)}\n\n"
            if reminder.status == ReminderStatus.ACTIVE:
                keyboard.row(
                    Button(f"❌ Отменить: {preview(reminder.text)}", CALLBACK_CANCEL + reminder.id, ButtonIntent.NEGATIVE)
                )
        if len(items) > LIST_LIMIT:
            text += f"\n... и ещё {len(items) - LIST_LIMIT}"
        await reply(request, responder, text, keyboard=None if keyboard.is_empty() else keyboard, markdown=True)

    async def _cancel(self, request: Request, responder: Responder, reminder_id: str) -> None:
        reminder = self.reminders.get_reminder(reminder_id)
        if reminder is None or reminder.user_id != request.user_id:
            await reply(request, responder, "❌ Напоминание не найдено")
            return
        if reminder.status != ReminderStatus.ACTIVE:
            await reply(request, responder, "ℹ️ Напоминание уже неактивно")
            return
        try:
            self.reminders.cancel_reminder(reminder.id)
        except NotFoundError:
            await reply(request, responder, "❌ Напоминание не найдено")
            return
        logger.info(f"Reminder cancelled: {reminder.id}", extra={"context": {"user_id": request.user_id}})
        await reply(request, responder, f"❌ Напоминание отменено: {reminder.text}")

    def _validate_date(self, value: str, data: dict[str, str]) -> Result[str]:
        try:
            day = datetime.strptime(value, DATE_FORMAT).date()
        except ValueError:
            return Result.failure(
                "❌ Неверный формат даты. Используй формат ДД.ММ.ГГГГ (например, 25.12.2024)", "bad_date"
            )
        if day < self._clock().date():
            return Result.failure(
                "❌ Нельзя создать напоминание на прошедшую дату. Выбери другую дату.", "past_date"
            )
        return Result.success(day.strftime(DATE_FORMAT))

    def _validate_time(self, value: str, data: dict[str, str]) -> Result[str]:
        return parse_time(value).then(lambda hm: self._check_not_past(data.get("date", ""), hm))

    def _check_not_past(self, date_value: str, hour_minute: tuple[int, int]) -> Result[str]:
        formatted = "{:02d}:{:02d}".format(*hour_minute)
        try:
            due_at = self._due_at(date_value, formatted)
        except ValueError:
            return Result.failure("❌ Ошибка при обработке даты. Начни заново.", "bad_date")
        if due_at < self._clock():
            return Result.failure(
                "❌ Нельзя создать напоминание на прошедшее время. Выбери другое время.", "past_time"
            )
        return Result.success(formatted)

    @staticmethod
    def _due_at(date_value: str, time_value: str) -> datetime:
        return datetime.strptime(f"{date_value} {time_value}", f"{DATE_FORMAT} %H:%M")

from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import Responder
from campus_bot.services.schedule_service import ScheduleService


class ScheduleHandler(Handler):
    """/schedule and /myschedule: today's classes."""

    def __init__(self, schedule: ScheduleService):
        self.schedule = schedule

    async def handle(self, request: Request, responder: Responder) -> None:
        items = await self.schedule.get_schedule(request.user_id)
        if not items:
            await reply(
                request, responder, "Расписание на сегодня пустое. Используйте /contact, если нужен совет."
            )
            return

        text = "📅 Ваше расписание на сегодня:\n\n"
        for item in items:
            text += (
                f"• {item.starts_at.strftime('%H:%M')} — {item.discipline}\n"
                f"  {item.instructor}, {item.location}\n"
                f"  {item.description}\n\n"
            )
        await reply(request, responder, text.rstrip())

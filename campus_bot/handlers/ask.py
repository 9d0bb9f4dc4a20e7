import httpx

from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import Responder
from campus_bot.logging_config import get_logger
from campus_bot.services.ai_service import AIService, QuestionContext
from campus_bot.services.llm import LLMError
from campus_bot.services.moodle_service import Course, MoodleError, MoodleService
from campus_bot.services.schedule_service import ScheduleService
from campus_bot.services.user_service import User, UserService

logger = get_logger("ask")

ASK_HINT = (
    "💬 **Задай вопрос**\n\n"
    "Я могу помочь тебе с вопросами о:\n"
    "• Курсах и обучении\n"
    "• Университетской жизни\n"
    "• И многом другом!\n\n"
    "Просто напиши свой вопрос после команды /ask."
)


class AskHandler(Handler):
    """/ask <question>: answer with the LLM, using the profile, timetable and Moodle courses as context."""

    def __init__(self, ai: AIService, users: UserService, moodle: MoodleService, schedule: ScheduleService):
        self.ai = ai
        self.users = users
        self.moodle = moodle
        self.schedule = schedule

    async def handle(self, request: Request, responder: Responder) -> None:
        if not self.ai.available:
            await reply(request, responder, "❌ Сервис AI временно недоступен. Обратитесь к администратору.")
            return

        question = request.args.strip()
        if not question:
            await reply(request, responder, ASK_HINT, markdown=True)
            return

        user = self.users.get_user(request.user_id) if request.user_id else None
        if user is None:
            await reply(request, responder, "❌ Пользователь не найден. Пожалуйста, зарегистрируйся через /register")
            return

        context = QuestionContext(
            user=user,
            courses=await self._courses(user),
            schedule=await self.schedule.get_schedule(user.user_id),
        )
        try:
            answer = await self.ai.ask(question, context)
        except (LLMError, httpx.HTTPError) as e:
            logger.error(f"AI request failed: {e}", extra={"context": {"user_id": user.user_id}})
            await reply(request, responder, "❌ Извини, не удалось получить ответ. Попробуй позже.")
            return

        await reply(request, responder, answer or "🤷 Не удалось сформулировать ответ.", markdown=True)

    async def _courses(self, user: User) -> list[Course]:
        if not user.moodle_token:
            return []
        try:
            info = await self.moodle.get_site_info(user.moodle_token)
            return await self.moodle.get_user_courses(user.moodle_token, info.userid)
        except MoodleError as e:
            logger.warning(f"Skipping Moodle context: {e}", extra={"context": {"user_id": user.user_id}})
            return []

from campus_bot.bot.handler import Handler, Request, ack, reply
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, MessengerError, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep, required_text
from campus_bot.handlers.common import preview, require_capability, split_callback
from campus_bot.logging_config import get_logger
from campus_bot.schemas.state import STEP_MOODLE_TOKEN
from campus_bot.services.ai_service import clean_html
from campus_bot.services.capabilities import Capability
from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.moodle_service import Course, MoodleError, MoodleService, SiteInfo
from campus_bot.services.user_service import User, UserService

logger = get_logger("moodle")

CALLBACK_PREFIX = "moodle:"
MAX_COURSES = 10
COURSE_SUMMARY_LIMIT = 300
TOKEN_STEP = "token"


def site_info_text(info: SiteInfo, header: str = "🔗 **Moodle**\n\n") -> str:
    return (
        f"{header}"
        f"**Сайт:** {info.sitename}\n"
        f"**Пользователь:** {info.fullname}\n"
        f"**Логин:** {info.username}\n"
    )


def course_text(course: Course) -> str:
    text = f"📚 **{course.fullname}**\n\n"
    summary = clean_html(course.summary)
    if summary:
        text += f"{preview(summary, COURSE_SUMMARY_LIMIT)}\n\n"
    if course.progress is not None:
        text += f"📊 Прогресс: {course.progress:.0f}%\n"
    text += "✅ Завершен" if course.completed else "⏳ В процессе"
    return text


def moodle_keyboard() -> Keyboard:
    keyboard = Keyboard()
    keyboard.row(Button("🔄 Обновить информацию", "moodle:refresh", ButtonIntent.POSITIVE))
    keyboard.row(Button("🔑 Изменить токен", "moodle:change_token", ButtonIntent.POSITIVE))
    keyboard.row(Button("📚 Мои курсы", "moodle:courses", ButtonIntent.POSITIVE))
    return keyboard


class MoodleHandler(Handler):
    """/moodle: bind a Moodle token, then show profile info and courses."""

    def __init__(self, users: UserService, moodle: MoodleService):
        self.users = users
        self.moodle = moodle
        self.wizard = Wizard(
            "moodle_token",
            [WizardStep(TOKEN_STEP, validate=required_text("❌ Токен не может быть пустым. Попробуй снова."))],
            step_tag=STEP_MOODLE_TOKEN,
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        user = await require_capability(
            self.users, request, responder, Capability.MOODLE, "❌ Эта команда доступна только студентам."
        )
        if user is None:
            return

        if request.is_callback:
            await self._handle_callback(request, responder, user)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_token(request, responder)
        elif not user.moodle_token:
            self.wizard.start(request.state)
            await reply(
                request,
                responder,
                "🔗 **Интеграция с Moodle**\n\n"
                "Для работы с Moodle необходимо добавить токен доступа.\n\n"
                "Введи свой токен Moodle:",
                markdown=True,
            )
        else:
            await self._show_info(request, responder, user.moodle_token)

    async def _show_info(self, request: Request, responder: Responder, token: str) -> None:
        try:
            info = await self.moodle.get_site_info(token)
        except MoodleError as e:
            logger.warning(f"Moodle site info failed: {e}", extra={"context": {"user_id": request.user_id}})
            await reply(request, responder, "❌ Ошибка при подключении к Moodle. Проверь токен или попробуй позже.")
            return
        await reply(request, responder, site_info_text(info), keyboard=moodle_keyboard(), markdown=True)

    async def _handle_token(self, request: Request, responder: Responder) -> None:
        state = request.state
        outcome = self.wizard.accept_text(state, request.args)
        if outcome.transition == Transition.STAY:
            await reply(request, responder, outcome.error or "❌ Токен не может быть пустым. Попробуй снова.")
            return

        token = self.wizard.values(state)[TOKEN_STEP]
        try:
            info = await self.moodle.get_site_info(token)
        except MoodleError as e:
            logger.info(f"Moodle token rejected: {e}", extra={"context": {"user_id": request.user_id}})
            self.wizard.discard(state, TOKEN_STEP)
            await reply(request, responder, "❌ Неверный токен. Проверь правильность токена и попробуй снова.")
            return

        try:
            self.users.set_moodle_token(request.user_id, token)
        except NotFoundError:
            self.wizard.finish(state)
            await reply(request, responder, "❌ Ошибка при сохранении токена.")
            return

        self.wizard.finish(state)
        await reply(
            request,
            responder,
            "✅ Токен успешно привязан!\n\n"
            f"**Пользователь:** {info.fullname}\n"
            f"**Сайт:** {info.sitename}\n\n"
            "Теперь ты можешь использовать все возможности Moodle.",
            keyboard=moodle_keyboard(),
            markdown=True,
        )

    async def _handle_callback(self, request: Request, responder: Responder, user: User) -> None:
        action, _ = split_callback(request.args, CALLBACK_PREFIX)
        await ack(request, responder)

        if action == "change_token":
            self.wizard.start(request.state)
            await reply(request, responder, "🔑 **Изменение токена Moodle**\n\nВведи новый токен:", markdown=True)
            return

        if not user.moodle_token:
            await reply(request, responder, "❌ Токен Moodle не найден. Используй /moodle для привязки.")
            return

        if action == "refresh":
            try:
                info = await self.moodle.get_site_info(user.moodle_token)
            except MoodleError:
                await reply(request, responder, "❌ Ошибка при обновлении информации.")
                return
            await reply(request, responder, site_info_text(info, "✅ Информация обновлена!\n\n"), markdown=True)
        elif action == "courses":
            await self._send_courses(request, responder, user.moodle_token)

    async def _send_courses(self, request: Request, responder: Responder, token: str) -> None:
        try:
            info = await self.moodle.get_site_info(token)
            courses = await self.moodle.get_user_courses(token, info.userid)
        except MoodleError as e:
            logger.warning(f"Moodle courses failed: {e}", extra={"context": {"user_id": request.user_id}})
            await reply(request, responder, "❌ Ошибка при получении курсов.")
            return

        if not courses:
            await reply(request, responder, "📚 У тебя пока нет курсов в Moodle.", markdown=True)
            return

        for course in courses[:MAX_COURSES]:
            try:
                await reply(request, responder, course_text(course), markdown=True)
            except MessengerError as e:
                logger.warning(f"Failed to send course: {e}", extra={"context": {"course_id": course.id}})
        if len(courses) > MAX_COURSES:
            await reply(request, responder, f"... и ещё {len(courses) - MAX_COURSES} курсов", markdown=True)

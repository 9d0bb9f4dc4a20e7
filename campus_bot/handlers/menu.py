from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import Responder
from campus_bot.services.capabilities import Capability, CommandInfo, commands_for_role
from campus_bot.services.user_service import Role, UserService, role_label

GREETING = (
    "👋 Привет! Я MAX Helper, твой ассистент для поступления и учебы.\n\n"
    "Для начала работы нужно пройти регистрацию. Это займет всего пару минут!\n\n"
    "Нажми /register чтобы начать регистрацию."
)

UNKNOWN_COMMAND = "Я пока не знаю такой команды. Попробуй /help, чтобы посмотреть, что я уже умею."

GENERAL_CAPABILITIES = frozenset({Capability.HELP, Capability.CONTACT})

ROLE_SECTIONS = {
    Role.APPLICANT: "🔹 Для абитуриентов:",
    Role.STUDENT: "🔹 Для студентов:",
    Role.EMPLOYEE: "🔹 Для сотрудников:",
    Role.MANAGER: "🔹 Для руководителей:",
}


def _command_line(info: CommandInfo, indent: str = "") -> str:
    return f"{indent}{info.command} - {info.description}"


class StartHandler(Handler):
    def __init__(self, users: UserService):
        self.users = users

    async def handle(self, request: Request, responder: Responder) -> None:
        user = self.users.get_user(request.user_id) if request.user_id else None
        if user is None:
            await reply(request, responder, GREETING)
            return

        lines = [
            f"👋 Привет, {user.full_name}!",
            "",
            f"Твоя роль: {role_label(user.role)}",
            "",
            "Вот чем я могу помочь:",
        ]
        lines.extend(_command_line(info, "• ") for info in commands_for_role(user.role))
        lines.append("")
        lines.append("Напиши команду или используй /menu для просмотра всех доступных команд.")
        await reply(request, responder, "\n".join(lines))


class MenuHandler(Handler):
    """/menu and /help: commands available to the user's role, general ones first."""

    def __init__(self, users: UserService):
        self.users = users

    async def handle(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return

        user = self.users.get_user(request.user_id)
        if user is None:
            await reply(request, responder, "❌ Ты не зарегистрирован. Используй /register для регистрации.")
            return

        commands = commands_for_role(user.role)
        general = [info for info in commands if info.capability in GENERAL_CAPABILITIES]
        specific = [info for info in commands if info.capability not in GENERAL_CAPABILITIES]

        lines = ["📋 Доступные команды:", "", f"Роль: {role_label(user.role)}", ""]
        if general:
            lines.append("🔹 Общее:")
            lines.extend(_command_line(info, "  ") for info in general)
            lines.append("")
        if specific:
            lines.append(ROLE_SECTIONS.get(user.role, "🔹 Команды:"))
            lines.extend(_command_line(info, "  ") for info in specific)
        await reply(request, responder, "\n".join(lines).rstrip())


class FallbackHandler(Handler):
    async def handle(self, request: Request, responder: Responder) -> None:
        await reply(request, responder, UNKNOWN_COMMAND)

from campus_bot.bot.handler import (
    Handler,
    Request,
    ack,
    delete_and_send_new,
    reply,
    respond_with_keyboard,
)
from campus_bot.bot.responder import Button, ButtonIntent, Keyboard, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep
from campus_bot.logging_config import get_logger
from campus_bot.schemas import state as steps
from campus_bot.services.result import Result
from campus_bot.services.user_service import User, UserService, classify_role, role_label

logger = get_logger("registration")

CALLBACK_PREFIX = "user_reg:"
CALLBACK_BACK = "user_reg:back"
CALLBACK_CANCEL = "user_reg:cancel"
CALLBACK_GENDER = "user_reg:gender:"

GENDER_LABELS = {"male": "Мужской", "female": "Женский"}
MIN_AGE, MAX_AGE = 1, 150

HEADER = "👤 Регистрация в системе университета\n\n"


def _parse_int(value: str) -> Result[int]:
    try:
        return Result.success(int(value))
    except ValueError:
        return Result.failure("❌ Пожалуйста, введи корректный возраст (число). Например: 20", "not_a_number")


def _age_in_range(age: int) -> Result[str]:
    if age < MIN_AGE or age > MAX_AGE:
        return Result.failure(f"❌ Возраст должен быть от {MIN_AGE} до {MAX_AGE} лет. Попробуй ещё раз.", "out_of_range")
    return Result.success(str(age))


def validate_age(value: str, data: dict[str, str]) -> Result[str]:
    return _parse_int(value).then(_age_in_range)


def validate_gender(value: str, data: dict[str, str]) -> Result[str]:
    if value not in GENDER_LABELS:
        return Result.failure("Выбери пол кнопкой ниже", "unknown_gender")
    return Result.success(value)


def validate_email(value: str, data: dict[str, str]) -> Result[str]:
    if "@" not in value:
        return Result.failure("❌ Пожалуйста, введи корректный email адрес (должен содержать @)", "bad_email")
    return Result.success(value)


def _nav_row(with_back: bool = True) -> list[Button]:
    buttons = []
    if with_back:
        buttons.append(Button("◀️ Назад", CALLBACK_BACK))
    buttons.append(Button("❌ Отмена", CALLBACK_CANCEL, ButtonIntent.NEGATIVE))
    return buttons


class RegistrationHandler(Handler):
    """/register: first_name -> last_name -> age -> gender -> email -> email_verification -> completed."""

    def __init__(self, users: UserService, verification_code: str = "1111", role_overrides: bool = True):
        self.users = users
        self.verification_code = verification_code
        self.role_overrides = role_overrides
        self.wizard = Wizard(
            "registration",
            [
                WizardStep(steps.STEP_FIRST_NAME, prompt=self._prompt_first_name),
                WizardStep(steps.STEP_LAST_NAME, prompt=self._prompt_last_name),
                WizardStep(steps.STEP_AGE, validate=validate_age, prompt=self._prompt_age),
                WizardStep(
                    steps.STEP_GENDER,
                    validate=validate_gender,
                    accepts_text=False,
                    accepts_choice=True,
                    prompt=self._prompt_gender,
                ),
                WizardStep(steps.STEP_EMAIL, validate=validate_email, prompt=self._prompt_email),
                WizardStep(
                    steps.STEP_EMAIL_VERIFICATION,
                    validate=self._validate_code,
                    prompt=self._prompt_verification,
                ),
            ],
            done_step=steps.COMPLETED_STEP,
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        if request.is_callback and request.args.startswith(CALLBACK_PREFIX):
            await self._handle_callback(request, responder)
        elif not request.command and self.wizard.owns(request.state):
            await self._handle_text(request, responder)
        else:
            await self._start(request, responder)

    async def _start(self, request: Request, responder: Responder) -> None:
        if not request.user_id:
            await reply(request, responder, "Не удалось определить пользователя")
            return

        existing = self.users.get_user(request.user_id)
        if existing is not None:
            text = (
                "✅ Ты уже зарегистрирован!\n\n"
                f"Имя: {existing.full_name}\n"
                f"Email: {existing.email}\n"
                f"Роль: {role_label(existing.role)}\n"
            )
            await reply(request, responder, text)
            return

        if not self.wizard.owns(request.state):
            self.wizard.start(request.state)
        await self.wizard.render(request.state, request, responder)

    async def _handle_text(self, request: Request, responder: Responder) -> None:
        state = request.state
        if not request.args.strip():
            await reply(request, responder, "Пожалуйста, введи текст")
            return

        outcome = self.wizard.accept_text(state, request.args)
        if outcome.transition == Transition.STAY:
            if outcome.error:
                await reply(request, responder, outcome.error)
            else:
                # step takes buttons only, show them again
                await self.wizard.render(state, request, responder)
        elif outcome.transition == Transition.ADVANCE:
            await self.wizard.render(state, request, responder)
        elif outcome.transition == Transition.COMPLETE:
            await self._complete(request, responder)

    async def _handle_callback(self, request: Request, responder: Responder) -> None:
        payload = request.args
        state = request.state

        if payload == CALLBACK_CANCEL:
            self.wizard.cancel(state)
            await delete_and_send_new(
                request, responder, "❌ Регистрация отменена. Можешь начать заново командой /register"
            )
            return

        if not self.wizard.owns(state):
            await ack(request, responder, "Регистрация не начата. Напиши /register")
            return

        if payload == CALLBACK_BACK:
            self.wizard.back(state)
            await self.wizard.render(state, request, responder)
            return

        if payload.startswith(CALLBACK_GENDER):
            outcome = self.wizard.accept_choice(state, payload[len(CALLBACK_GENDER) :])
            if outcome.transition == Transition.ADVANCE:
                await self.wizard.render(state, request, responder)
            else:
                await ack(request, responder, outcome.error)
            return

        await ack(request, responder)

    async def _complete(self, request: Request, responder: Responder) -> None:
        values = self.wizard.values(request.state)
        first_name = values[steps.STEP_FIRST_NAME]
        user = User(
            user_id=request.user_id,
            first_name=first_name,
            last_name=values[steps.STEP_LAST_NAME],
            age=int(values[steps.STEP_AGE]),
            gender=values[steps.STEP_GENDER],
            email=values[steps.STEP_EMAIL],
            role=classify_role(first_name, self.role_overrides),
        )
        created = self.users.create_user(user)
        self.wizard.finish(request.state)
        logger.info(f"Registration completed: {created.user_id}", extra={"context": {"role": created.role.value}})

        text = (
            "✅ Регистрация завершена!\n\n"
            "📋 Твои данные:\n"
            f"• Имя: {created.full_name}\n"
            f"• Возраст: {created.age} лет\n"
            f"• Пол: {GENDER_LABELS.get(created.gender, created.gender)}\n"
            f"• Email: {created.email}\n"
            f"• Роль: {role_label(created.role)}\n\n"
            "Теперь ты можешь пользоваться всеми возможностями бота! 🎉"
        )
        await delete_and_send_new(request, responder, text)

    def _validate_code(self, value: str, data: dict[str, str]) -> Result[str]:
        if value != self.verification_code:
            return Result.failure("❌ Неверный код подтверждения. Попробуй ещё раз.", "bad_code")
        return Result.success(value)

    async def _prompt_first_name(self, request: Request, responder: Responder) -> None:
        text = HEADER + "Шаг 1 из 6: Введи своё имя\n\nНапиши своё имя текстом:"
        await respond_with_keyboard(request, responder, text, Keyboard().row(*_nav_row(with_back=False)))

    async def _prompt_last_name(self, request: Request, responder: Responder) -> None:
        text = HEADER + "Шаг 2 из 6: Введи свою фамилию\n\nНапиши свою фамилию текстом:"
        await respond_with_keyboard(request, responder, text, Keyboard().row(*_nav_row()))

    async def _prompt_age(self, request: Request, responder: Responder) -> None:
        text = HEADER + "Шаг 3 из 6: Введи свой возраст\n\nНапиши свой возраст числом (например: 20):"
        await respond_with_keyboard(request, responder, text, Keyboard().row(*_nav_row()))

    async def _prompt_gender(self, request: Request, responder: Responder) -> None:
        text = HEADER + "Шаг 4 из 6: Выбери свой пол\n\nВыбери пол:"
        keyboard = Keyboard().row(
            Button("Мужской", CALLBACK_GENDER + "male", ButtonIntent.POSITIVE),
            Button("Женский", CALLBACK_GENDER + "female", ButtonIntent.POSITIVE),
        )
        keyboard.row(*_nav_row())
        await respond_with_keyboard(request, responder, text, keyboard)

    async def _prompt_email(self, request: Request, responder: Responder) -> None:
        text = HEADER + "Шаг 5 из 6: Введи свою электронную почту\n\nНапиши свой email адрес:"
        await respond_with_keyboard(request, responder, text, Keyboard().row(*_nav_row()))

    async def _prompt_verification(self, request: Request, responder: Responder) -> None:
        email = request.data.get(steps.STEP_EMAIL, "")
        text = (
            HEADER
            + "Шаг 6 из 6: Подтверждение email\n\n"
            + f"Мы отправили код подтверждения на адрес {email}\n\n"
            + "Введи код подтверждения:"
        )
        await respond_with_keyboard(request, responder, text, Keyboard().row(*_nav_row()))

import asyncio
import os

from fastapi import FastAPI

from campus_bot.bot.dispatcher import Dispatcher
from campus_bot.config import Settings, settings
from campus_bot.handlers import Services, build_router
from campus_bot.logging_config import get_logger, setup_logging
from campus_bot.routers import reminders, webhook
from campus_bot.services.ai_service import AIService
from campus_bot.services.llm import OpenAIProvider
from campus_bot.services.messenger_service import MessengerService
from campus_bot.services.moodle_service import MoodleService
from campus_bot.services.reminder_service import scan_due_reminders
from campus_bot.services.schedule_service import ScheduleService
from campus_bot.services.state_store import InMemoryStateStore, RedisStateStore, StateStore

logger = get_logger("main")
scanner_logger = get_logger("reminder_scanner")


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_reminder_scanner_enabled(app_settings: Settings) -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    if not app_settings.reminder_scanner_enabled:
        return False
    return _is_env_enabled(os.environ.get("REMINDER_SCANNER_ENABLED"), default=True)


def build_store(app_settings: Settings) -> StateStore:
    if app_settings.state_backend == "memory":
        return InMemoryStateStore(ttl_seconds=app_settings.state_ttl_seconds)
    return RedisStateStore.from_url(
        app_settings.redis_url,
        key_prefix=app_settings.state_key_prefix,
        ttl_seconds=app_settings.state_ttl_seconds,
        socket_timeout_seconds=app_settings.redis_socket_timeout_seconds,
    )


def build_services(app_settings: Settings) -> Services:
    provider = None
    if app_settings.openai_api_key:
        provider = OpenAIProvider(api_key=app_settings.openai_api_key, default_model=app_settings.openai_model)
    return Services(
        moodle=MoodleService(app_settings.moodle_base_url, app_settings.moodle_timeout_seconds),
        ai=AIService(provider, app_settings.openai_model),
        schedule=ScheduleService(app_settings.schedule_mock_lag_seconds),
    )


async def _reminder_scanner_loop(app: FastAPI) -> None:
    interval_seconds = max(app.state.settings.reminder_scan_interval_seconds, 1.0)
    while True:
        try:
            results = await scan_due_reminders(app.state.services.reminders, app.state.responder)
            if results["total"]:
                scanner_logger.debug("Reminder scanner tick", extra={"context": results})
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            break
        except Exception as exc:
            scanner_logger.error(
                "Reminder scanner loop failed",
                extra={"context": {"error": str(exc)}},
            )
            await asyncio.sleep(interval_seconds)


def create_app(app_settings: Settings = settings) -> FastAPI:
    setup_logging(app_settings.log_level)

    app = FastAPI(
        title="Campus Bot",
        description="Messenger bot for university students and staff",
        version="0.1.0",
    )
    app.state.settings = app_settings
    app.state.scanner_task = None

    app.include_router(webhook.router)
    app.include_router(reminders.router)

    @app.on_event("startup")
    async def start_bot() -> None:
        services = build_services(app_settings)
        router = build_router(
            services,
            verification_code=app_settings.registration_verification_code,
            role_overrides=app_settings.registration_role_overrides,
        )
        app.state.services = services
        app.state.store = build_store(app_settings)
        app.state.responder = MessengerService(
            app_settings.bot_token,
            base_url=app_settings.messenger_api_url,
            timeout_seconds=app_settings.messenger_timeout_seconds,
        )
        app.state.dispatcher = Dispatcher(router, app.state.store, app.state.responder)
        logger.info(
            "Bot started",
            extra={"context": {"state_backend": app_settings.state_backend, "commands": router.commands.commands()}},
        )

        if _is_reminder_scanner_enabled(app_settings):
            app.state.scanner_task = asyncio.create_task(_reminder_scanner_loop(app))
            scanner_logger.info("Reminder scanner started")

    @app.on_event("shutdown")
    async def stop_bot() -> None:
        await app.state.dispatcher.close()

        task = app.state.scanner_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            app.state.scanner_task = None

        await app.state.store.close()
        await app.state.responder.close()
        logger.info("Bot stopped")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

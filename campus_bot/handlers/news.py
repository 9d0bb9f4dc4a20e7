from campus_bot.bot.handler import Handler, Request, reply
from campus_bot.bot.responder import MessengerError, Responder
from campus_bot.bot.wizard import Transition, Wizard, WizardStep, required_text
from campus_bot.handlers.common import DATETIME_FORMAT, require_capability
from campus_bot.logging_config import get_logger
from campus_bot.schemas.event import Recipient
from campus_bot.schemas.state import STEP_SEND_NEWS
from campus_bot.services.capabilities import Capability
from campus_bot.services.news_service import News, NewsService
from campus_bot.services.user_service import UserService

logger = get_logger("news")

LATEST_NEWS_COUNT = 3
EMPTY_TEXT_ERROR = "❌ Текст не может быть пустым. Попробуй снова."


def render_news(news: News, with_icon: bool = False) -> str:
    title = f"📰 **{news.title}**" if with_icon else f"**{news.title}**"
    return f"{title}\n\n{news.content}\n\n_{news.author}, {news.created_at.strftime(DATETIME_FORMAT)}_"


class NewsHandler(Handler):
    """/news: latest announcements, one message each."""

    def __init__(self, news: NewsService):
        self.news = news

    async def handle(self, request: Request, responder: Responder) -> None:
        latest = self.news.latest(LATEST_NEWS_COUNT)
        if not latest:
            await reply(request, responder, "📰 Пока нет новостей.")
            return
        for item in latest:
            try:
                await reply(request, responder, render_news(item), markdown=True)
            except MessengerError as e:
                logger.warning(f"Failed to send news: {e}", extra={"context": {"news_id": item.id}})


class SendNewsHandler(Handler):
    """/send_news: title -> content, then broadcast to every registered user but the author."""

    def __init__(self, news: NewsService, users: UserService):
        self.news = news
        self.users = users
        self.wizard = Wizard(
            "send_news",
            [
                WizardStep("title", validate=required_text(EMPTY_TEXT_ERROR)),
                WizardStep("content", validate=required_text(EMPTY_TEXT_ERROR)),
            ],
            step_tag=STEP_SEND_NEWS,
        )

    async def handle(self, request: Request, responder: Responder) -> None:
        user = await require_capability(
            self.users, request, responder, Capability.SEND_NEWS, "❌ Эта команда доступна только администраторам."
        )
        if user is None:
            return

        if not request.command and self.wizard.owns(request.state):
            await self._handle_input(request, responder, user.full_name or "Администратор")
            return

        self.wizard.start(request.state)
        await reply(request, responder, "📰 **Отправка новости**\n\nВведи заголовок новости:", markdown=True)

    async def _handle_input(self, request: Request, responder: Responder, author: str) -> None:
        state = request.state
        outcome = self.wizard.accept_text(state, request.args)
        if outcome.transition == Transition.STAY:
            await reply(request, responder, outcome.error or EMPTY_TEXT_ERROR)
            return
        if outcome.transition == Transition.ADVANCE:
            await reply(request, responder, "✅ Заголовок сохранён.\n\nТеперь введи текст новости (в markdown формате):")
            return

        values = self.wizard.values(state)
        item = self.news.create_news(values["title"], values["content"], request.user_id, author)
        self.wizard.finish(state)

        sent, failed = await self._broadcast(responder, item, request.user_id)
        summary = (
            "✅ Новость создана и отправлена!\n\n"
            f"**{item.title}**\n\n{item.content}\n\n"
            f"Отправлено: {sent} пользователей\n"
        )
        if failed:
            summary += f"Ошибок: {failed}\n"
        await reply(request, responder, summary, markdown=True)

    async def _broadcast(self, responder: Responder, item: News, author_id: str) -> tuple[int, int]:
        message = render_news(item, with_icon=True)
        sent = failed = 0
        for user in self.users.list_users():
            if user.user_id == author_id:
                continue
            try:
                await responder.send_message(Recipient.for_user(user.user_id), message, markdown=True)
                sent += 1
            except MessengerError as e:
                failed += 1
                logger.warning(f"Failed to send news to user: {e}", extra={"context": {"user_id": user.user_id}})
        logger.info("News broadcast finished", extra={"context": {"news_id": item.id, "sent": sent, "failed": failed}})
        return sent, failed

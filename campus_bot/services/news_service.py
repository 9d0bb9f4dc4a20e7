import itertools
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from campus_bot.logging_config import get_logger

logger = get_logger("news_service")


@dataclass
class News:
    id: str
    title: str
    content: str  # markdown
    author_id: str
    author: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NewsService:
    def __init__(self):
        self._news: list[News] = []
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def create_news(self, title: str, content: str, author_id: str, author: str) -> News:
        now = datetime.now(timezone.utc)
        with self._lock:
            news = News(
                id=f"news-{int(now.timestamp())}-{next(self._seq)}",
                title=title,
                content=content,
                author_id=author_id,
                author=author,
                created_at=now,
            )
            self._news.append(news)
        logger.info(f"News created: {news.id}", extra={"context": {"author_id": author_id}})
        return replace(news)

    def latest(self, count: int = 5) -> list[News]:
        """Newest first."""
        if count <= 0:
            return []
        with self._lock:
            newest = [replace(n) for n in self._news[-count:]]
        return newest[::-1]

from campus_bot.services.exceptions import NotFoundError
from campus_bot.services.result import Result

__all__ = ["NotFoundError", "Result"]

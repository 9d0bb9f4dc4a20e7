from dataclasses import dataclass
from typing import Optional

import httpx

from campus_bot.logging_config import get_logger

logger = get_logger("moodle_service")

REST_PATH = "/webservice/rest/server.php"


class MoodleError(Exception):
    pass


@dataclass
class SiteInfo:
    sitename: str
    username: str
    fullname: str
    userid: int
    siteurl: str = ""
    lang: str = ""


@dataclass
class Course:
    id: int
    fullname: str
    shortname: str = ""
    summary: str = ""
    progress: Optional[float] = None
    completed: bool = False


class MoodleService:
    """Thin client for the Moodle web-service REST API."""

    def __init__(self, base_url: str, timeout_seconds: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def _call(self, token: str, function: str, **params) -> object:
        query = {"wstoken": token, "wsfunction": function, "moodlewsrestformat": "json", **params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}{REST_PATH}", params=query)
        except httpx.HTTPError as e:
            logger.error(f"Moodle request failed: {e}", extra={"context": {"function": function}})
            raise MoodleError(f"Moodle request failed: {e}") from e

        if response.status_code != 200:
            raise MoodleError(f"Moodle API error: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise MoodleError("Moodle returned invalid JSON") from e

        # Moodle reports errors with HTTP 200 and an exception payload
        if isinstance(data, dict) and data.get("exception"):
            logger.warning(
                f"Moodle exception: {data.get('errorcode')}",
                extra={"context": {"function": function, "message": data.get("message")}},
            )
            raise MoodleError(data.get("message") or data.get("errorcode") or "Moodle error")
        return data

    async def get_site_info(self, token: str) -> SiteInfo:
        data = await self._call(token, "core_webservice_get_site_info")
        if not isinstance(data, dict):
            raise MoodleError("Unexpected site info payload")
        return SiteInfo(
            sitename=data.get("sitename", ""),
            username=data.get("username", ""),
            fullname=data.get("fullname", ""),
            userid=int(data.get("userid") or 0),
            siteurl=data.get("siteurl", ""),
            lang=data.get("lang", ""),
        )

    async def get_user_courses(self, token: str, moodle_user_id: int) -> list[Course]:
        data = await self._call(token, "core_enrol_get_users_courses", userid=str(moodle_user_id))
        if not isinstance(data, list):
            raise MoodleError("Unexpected courses payload")
        return [
            Course(
                id=int(item.get("id") or 0),
                fullname=item.get("fullname") or item.get("displayname") or "",
                shortname=item.get("shortname", ""),
                summary=item.get("summary") or "",
                progress=item.get("progress"),
                completed=bool(item.get("completed")),
            )
            for item in data
        ]

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from campus_bot.bot.dispatcher import Dispatcher
from campus_bot.handlers import build_router
from campus_bot.services.moodle_service import Course, MoodleError, MoodleService, SiteInfo
from campus_bot.services.user_service import Role

SITE_INFO = SiteInfo(sitename="Campus LMS", username="ivanov", fullname="Иван Петров", userid=42)


def moodle_with(handler) -> MoodleService:
    return MoodleService("http://moodle.test/", transport=httpx.MockTransport(handler))


@pytest.fixture
def fake_moodle(services):
    moodle = AsyncMock(spec=MoodleService)
    moodle.get_site_info.return_value = SITE_INFO
    moodle.get_user_courses.return_value = [
        Course(id=1, fullname="Матанализ", summary="<p>Пределы <br>и ряды</p>", progress=40.0),
        Course(id=2, fullname="История", completed=True),
    ]
    services.moodle = moodle
    return moodle


@pytest.fixture
def student(add_user):
    return add_user("s1")


class TestMoodleService:
    def test_site_info(self):
        def handler(request):
            assert request.url.path == "/webservice/rest/server.php"
            assert request.url.params["wsfunction"] == "core_webservice_get_site_info"
            assert request.url.params["wstoken"] == "tok"
            return httpx.Response(200, json={"sitename": "LMS", "username": "u", "fullname": "U U", "userid": 7})

        info = asyncio.run(moodle_with(handler).get_site_info("tok"))
        assert info.userid == 7
        assert info.sitename == "LMS"

    def test_exception_payload_is_error(self):
        def handler(request):
            return httpx.Response(200, json={"exception": "moodle_exception", "errorcode": "invalidtoken", "message": "Invalid token"})

        with pytest.raises(MoodleError, match="Invalid token"):
            asyncio.run(moodle_with(handler).get_site_info("bad"))

    def test_http_error_status(self):
        with pytest.raises(MoodleError):
            asyncio.run(moodle_with(lambda request: httpx.Response(503)).get_site_info("tok"))

    def test_courses(self):
        def handler(request):
            assert request.url.params["userid"] == "42"
            return httpx.Response(200, json=[{"id": 3, "fullname": "Физика", "progress": 75.5, "completed": False}])

        [course] = asyncio.run(moodle_with(handler).get_user_courses("tok", 42))
        assert course.fullname == "Физика"
        assert course.progress == 75.5


class TestMoodleHandler:
    @pytest.fixture
    def run(self, services, fake_moodle, store, responder):
        # the router has to be built after the fake client is in place
        dispatcher = Dispatcher(build_router(services), store, responder)

        def _run(*events):
            async def _go():
                for event in events:
                    await dispatcher.dispatch(event)

            asyncio.run(_go())

        return _run

    def test_asks_for_token_first(self, run, load_state, responder, student, message_event):
        run(message_event("s1", "/moodle"))
        assert load_state("s1").step == "moodle_token"
        assert "Введи свой токен Moodle" in responder.texts[-1]

    def test_valid_token_is_saved(self, run, services, load_state, fake_moodle, student, message_event):
        run(message_event("s1", "/moodle"), message_event("s1", "  secret-token  "))

        fake_moodle.get_site_info.assert_awaited_with("secret-token")
        assert services.users.get_user("s1").moodle_token == "secret-token"
        assert load_state("s1").step == ""
        assert load_state("s1").data == {}

    def test_rejected_token_reprompts(self, run, services, load_state, responder, fake_moodle, student, message_event):
        fake_moodle.get_site_info.side_effect = MoodleError("Invalid token")
        run(message_event("s1", "/moodle"), message_event("s1", "wrong"))

        assert responder.texts[-1].startswith("❌ Неверный токен")
        assert load_state("s1").step == "moodle_token"
        assert "token" not in load_state("s1").data
        assert services.users.get_user("s1").moodle_token == ""

    def test_info_when_token_known(self, run, responder, add_user, message_event):
        add_user("s1", moodle_token="tok")
        run(message_event("s1", "/moodle"))
        assert "Campus LMS" in responder.texts[-1]
        payloads = [b.payload for row in responder.sent[-1]["keyboard"].rows for b in row]
        assert payloads == ["moodle:refresh", "moodle:change_token", "moodle:courses"]

    def test_courses_one_message_each(self, run, responder, fake_moodle, add_user, callback_event):
        add_user("s1", moodle_token="tok")
        run(callback_event("s1", "moodle:courses"))

        fake_moodle.get_user_courses.assert_awaited_once_with("tok", 42)
        assert len(responder.sent) == 2
        assert "Пределы" in responder.sent[0]["text"]
        assert "<p>" not in responder.sent[0]["text"]
        assert "✅ Завершен" in responder.sent[1]["text"]

    def test_change_token_restarts_capture(self, run, load_state, add_user, callback_event):
        add_user("s1", moodle_token="tok")
        run(callback_event("s1", "moodle:change_token"))
        assert load_state("s1").step == "moodle_token"

    def test_staff_are_turned_away(self, run, responder, load_state, add_user, message_event):
        add_user("m1", role=Role.MANAGER)
        run(message_event("m1", "/moodle"))
        assert responder.texts[-1] == "❌ Эта команда доступна только студентам."
        assert load_state("m1").step == ""

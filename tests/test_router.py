from unittest.mock import Mock

import pytest

from campus_bot.bot.router import (
    STEP_ROUTES,
    CallbackTable,
    CommandTable,
    Router,
    RoutingTableError,
    is_command_shaped,
    normalize_command,
    parse_command,
)
from campus_bot.schemas.state import ConversationState


@pytest.fixture
def handlers():
    names = [
        "start",
        "register",
        "tickets",
        "mytickets",
        "documents",
        "send_news",
        "moodle",
        "reminder",
        "deanery",
        "fallback",
    ]
    return {name: Mock(name=name) for name in names}


@pytest.fixture
def table_router(handlers):
    commands = CommandTable(
        [(f"/{name}", handler) for name, handler in handlers.items() if name != "fallback"],
        fallback=handlers["fallback"],
    )
    callbacks = CallbackTable(
        [
            ("user_reg:*", handlers["register"]),
            ("doc:*", handlers["deanery"]),
            ("doc_admin:*", handlers["documents"]),
            ("news:refresh", handlers["send_news"]),
        ]
    )
    return Router(commands, callbacks)


class TestParseCommand:
    def test_command_with_args(self):
        assert parse_command("  /Contact   Тема:Сообщение  ") == ("/contact", "Тема:Сообщение")

    def test_missing_marker_is_added(self):
        assert parse_command("help") == ("/help", "")

    def test_empty_text(self):
        assert parse_command("   ") == ("", "")

    def test_args_keep_inner_whitespace(self):
        assert parse_command("/ask как  дела?") == ("/ask", "как  дела?")

    def test_normalize_command(self):
        assert normalize_command("REGISTER") == "/register"
        assert normalize_command("/Register") == "/register"

    def test_command_shaped(self):
        assert is_command_shaped("  /start") is True
        assert is_command_shaped("start") is False
        assert is_command_shaped("") is False


class TestCommandTable:
    def test_last_registration_wins(self):
        first, second, fallback = Mock(), Mock(), Mock()
        table = CommandTable([("/help", first), ("HELP", second)], fallback=fallback)
        assert table.get("/help") is second
        assert table.commands() == ["/help"]

    def test_empty_command_rejected(self):
        with pytest.raises(RoutingTableError):
            CommandTable([("  ", Mock())], fallback=Mock())


class TestCallbackTable:
    def test_exact_match_before_wildcard(self):
        exact, wildcard = Mock(), Mock()
        table = CallbackTable([("doc:*", wildcard), ("doc:certificate", exact)])
        assert table.resolve("doc:certificate") is exact
        assert table.resolve("doc:payment") is wildcard

    def test_miss_returns_none(self):
        table = CallbackTable([("doc:*", Mock())])
        assert table.resolve("unknown:action") is None
        assert table.resolve("") is None

    def test_overlapping_prefixes_rejected(self):
        with pytest.raises(RoutingTableError):
            CallbackTable([("lib:*", Mock()), ("lib:manage:*", Mock())])

    def test_similar_but_disjoint_prefixes_allowed(self):
        deanery, documents = Mock(), Mock()
        table = CallbackTable([("doc:*", deanery), ("doc_admin:*", documents)])
        assert table.resolve("doc_admin:view:DOC-1") is documents
        assert table.resolve("doc:certificate") is deanery

    @pytest.mark.parametrize("key", ["*", ":*", "doc*", "do*c:*"])
    def test_malformed_wildcard_rejected(self, key):
        with pytest.raises(RoutingTableError):
            CallbackTable([(key, Mock())])


class TestResolve:
    def test_known_command(self, table_router, handlers):
        decision = table_router.resolve("/start now")
        assert decision.handler is handlers["start"]
        assert decision.command == "/start"
        assert decision.args == "now"

    def test_unknown_command_goes_to_fallback_with_parsed_parts(self, table_router, handlers):
        decision = table_router.resolve("/dance fast")
        assert decision.handler is handlers["fallback"]
        assert decision.command == "/dance"
        assert decision.args == "fast"

    def test_plain_text_goes_to_fallback(self, table_router, handlers):
        decision = table_router.resolve("привет")
        assert decision.handler is handlers["fallback"]


class TestResolveByState:
    @pytest.mark.parametrize("step", ["", "completed"])
    @pytest.mark.parametrize("text", ["/start", "/register", "/tickets x", "/unknown"])
    def test_idle_states_match_plain_resolve(self, table_router, step, text):
        state = ConversationState(step=step)
        assert table_router.resolve_by_state(text, state) == table_router.resolve(text)

    def test_absent_state_delegates_to_resolve(self, table_router):
        assert table_router.resolve_by_state("/start", None) == table_router.resolve("/start")

    @pytest.mark.parametrize(
        "step,owner",
        [
            ("ticket_reply", "tickets"),
            ("ticket_user_reply", "mytickets"),
            ("doc_response", "documents"),
            ("send_news", "send_news"),
            ("moodle_token", "moodle"),
            ("reminder_create", "reminder"),
        ],
    )
    def test_owned_step_routes_free_text_to_owner(self, table_router, handlers, step, owner):
        decision = table_router.resolve_by_state("ответ на обращение", ConversationState(step=step))
        assert decision.handler is handlers[owner]
        assert decision.command == ""
        assert decision.args == "ответ на обращение"

    def test_command_escapes_owned_step(self, table_router, handlers):
        decision = table_router.resolve_by_state("/start", ConversationState(step="ticket_reply"))
        assert decision.handler is handlers["start"]
        assert decision.command == "/start"

    def test_blank_text_reaches_document_reply(self, table_router, handlers):
        decision = table_router.resolve_by_state("", ConversationState(step="doc_response"))
        assert decision.handler is handlers["documents"]
        assert decision.args == ""

    def test_blank_text_does_not_reach_other_owners(self, table_router, handlers):
        decision = table_router.resolve_by_state("   ", ConversationState(step="ticket_reply"))
        assert decision.handler is handlers["fallback"]

    @pytest.mark.parametrize("step", ["first_name", "age", "email_verification", "some_future_step"])
    def test_other_steps_fall_back_to_registration(self, table_router, handlers, step):
        decision = table_router.resolve_by_state("Иван", ConversationState(step=step))
        assert decision.handler is handlers["register"]
        assert decision.args == "Иван"

    @pytest.mark.parametrize("step", ["first_name", "age", "email_verification", "some_future_step"])
    def test_blank_text_in_registration_step_goes_to_fallback(self, table_router, handlers, step):
        decision = table_router.resolve_by_state("  ", ConversationState(step=step))
        assert decision.handler is handlers["fallback"]
        assert decision.command == ""

    @pytest.mark.parametrize(
        "step", ["ticket_reply", "send_news", "moodle_token", "first_name", "age"]
    )
    def test_only_document_reply_accepts_blank(self, table_router, handlers, step):
        assert table_router.resolve_by_state("", ConversationState(step=step)).handler is handlers["fallback"]
        assert table_router.resolve_by_state("", ConversationState(step="doc_response")).handler is handlers["documents"]

    def test_command_during_registration_is_a_command(self, table_router, handlers):
        decision = table_router.resolve_by_state("/help", ConversationState(step="age"))
        assert decision.handler is handlers["fallback"]
        assert decision.command == "/help"

    def test_step_route_order_is_fixed(self):
        assert [route.step for route in STEP_ROUTES] == [
            "ticket_reply",
            "ticket_user_reply",
            "doc_response",
            "send_news",
            "moodle_token",
            "reminder_create",
        ]
        assert [route.step for route in STEP_ROUTES if route.accepts_blank] == ["doc_response"]


class TestResolveCallback:
    def test_wildcard_hit(self, table_router, handlers):
        assert table_router.resolve_callback("doc:certificate", ConversationState()) is handlers["deanery"]

    def test_exact_hit(self, table_router, handlers):
        assert table_router.resolve_callback("news:refresh") is handlers["send_news"]

    def test_miss(self, table_router):
        assert table_router.resolve_callback("lib_manage:issue:1:2", ConversationState()) is None

"""Routing tables and the stateful router.

Tables are built once at startup and never mutated afterwards; the
dispatcher receives them by reference.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from campus_bot.bot.handler import Handler
from campus_bot.logging_config import get_logger
from campus_bot.schemas import state as steps
from campus_bot.schemas.state import ConversationState

logger = get_logger("router")

COMMAND_MARKER = "/"
WILDCARD_SUFFIX = ":*"
REGISTER_COMMAND = "/register"


class RoutingTableError(ValueError):
    pass


def normalize_command(word: str) -> str:
    command = word.strip().lower()
    if command and not command.startswith(COMMAND_MARKER):
        command = COMMAND_MARKER + command
    return command


def is_command_shaped(text: str) -> bool:
    return text.strip().startswith(COMMAND_MARKER)


def parse_command(text: str) -> tuple[str, str]:
    """Split ``"/cmd rest of line"`` into a normalized command and trimmed args."""
    trimmed = text.strip()
    if not trimmed:
        return "", ""
    parts = trimmed.split(maxsplit=1)
    args = parts[1].strip() if len(parts) > 1 else ""
    return normalize_command(parts[0]), args


@dataclass(frozen=True)
class RouteDecision:
    handler: Handler
    command: str
    args: str


class CommandTable:
    """Normalized command word -> Handler, plus the fallback for unknown input."""

    def __init__(self, routes: Iterable[tuple[str, Handler]], fallback: Handler):
        table: dict[str, Handler] = {}
        for command, handler in routes:
            key = normalize_command(command)
            if not key:
                raise RoutingTableError("Command must not be empty")
            table[key] = handler  # last registration wins
        self._routes: Mapping[str, Handler] = MappingProxyType(table)
        self.fallback = fallback

    def get(self, command: str) -> Optional[Handler]:
        return self._routes.get(command)

    def __contains__(self, command: str) -> bool:
        return command in self._routes

    def commands(self) -> list[str]:
        return sorted(self._routes)


class CallbackTable:
    """Exact payloads and ``"<prefix>:*"`` wildcards mapped to handlers.

    Wildcard prefixes must be disjoint: no prefix may be a prefix of another,
    otherwise one payload could match two wildcards.
    """

    def __init__(self, routes: Iterable[tuple[str, Handler]]):
        exact: dict[str, Handler] = {}
        wildcard: dict[str, Handler] = {}
        for key, handler in routes:
            if key.endswith(WILDCARD_SUFFIX):
                prefix = key[: -len("*")]
                if prefix == ":" or "*" in prefix:
                    raise RoutingTableError(f"Malformed callback wildcard: {key!r}")
                wildcard[prefix] = handler
            elif "*" in key:
                raise RoutingTableError(f"Malformed callback wildcard: {key!r}")
            elif not key:
                raise RoutingTableError("Callback payload must not be empty")
            else:
                exact[key] = handler

        _check_disjoint(wildcard)
        self._exact: Mapping[str, Handler] = MappingProxyType(exact)
        self._prefixes: Mapping[str, Handler] = MappingProxyType(wildcard)

    @property
    def prefixes(self) -> tuple[str, ...]:
        return tuple(self._prefixes)

    def resolve(self, payload: str) -> Optional[Handler]:
        handler = self._exact.get(payload)
        if handler is not None:
            return handler
        for prefix, handler in self._prefixes.items():
            if payload.startswith(prefix):
                return handler
        return None


def _check_disjoint(prefixes: Mapping[str, Handler]) -> None:
    ordered = sorted(prefixes)
    for shorter, longer in zip(ordered, ordered[1:]):
        # after sorting, any prefix relation shows up between neighbours
        if longer.startswith(shorter):
            raise RoutingTableError(f"Callback prefixes overlap: {shorter!r} and {longer!r}")


@dataclass(frozen=True)
class StepRoute:
    """A step that owns the user's next free-text message."""

    step: str
    command: str
    accepts_blank: bool = False


# Order is significant and must stay fixed.
STEP_ROUTES: tuple[StepRoute, ...] = (
    StepRoute(steps.STEP_TICKET_REPLY, "/tickets"),
    StepRoute(steps.STEP_TICKET_USER_REPLY, "/mytickets"),
    StepRoute(steps.STEP_DOC_RESPONSE, "/documents", accepts_blank=True),
    StepRoute(steps.STEP_SEND_NEWS, "/send_news"),
    StepRoute(steps.STEP_MOODLE_TOKEN, "/moodle"),
    StepRoute(steps.STEP_REMINDER_CREATE, "/reminder"),
)


class Router:
    def __init__(
        self,
        commands: CommandTable,
        callbacks: CallbackTable,
        step_routes: tuple[StepRoute, ...] = STEP_ROUTES,
        wizard_command: str = REGISTER_COMMAND,
    ):
        self.commands = commands
        self.callbacks = callbacks
        self._step_routes = step_routes
        self._owned_steps = frozenset(route.step for route in step_routes)
        self._wizard_command = wizard_command

    def resolve(self, text: str) -> RouteDecision:
        command, args = parse_command(text)
        handler = self.commands.get(command)
        if handler is None:
            return RouteDecision(self.commands.fallback, command, args)
        return RouteDecision(handler, command, args)

    def resolve_by_state(self, text: str, state: Optional[ConversationState]) -> RouteDecision:
        if state is None:
            return self.resolve(text)

        step = state.step
        command_shaped = is_command_shaped(text)
        blank = not text.strip()

        for route in self._step_routes:
            if step != route.step or command_shaped:
                continue
            if blank and not route.accepts_blank:
                continue
            handler = self.commands.get(route.command)
            if handler is None:
                continue
            logger.debug(f"Step route {step} -> {route.command}")
            return RouteDecision(handler, "", text)

        if (
            step
            and step != steps.COMPLETED_STEP
            and step not in self._owned_steps
            and not command_shaped
            and not blank
        ):
            handler = self.commands.get(self._wizard_command)
            if handler is not None:
                logger.debug(f"Wizard step {step} -> {self._wizard_command}")
                return RouteDecision(handler, "", text)

        return self.resolve(text)

    def resolve_callback(self, payload: str, state: Optional[ConversationState] = None) -> Optional[Handler]:
        return self.callbacks.resolve(payload)

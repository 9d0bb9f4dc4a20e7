"""Generic multi-turn input flow driven by the step tag and data bag of ConversationState.

Two ways to track position:

* tagged: ``state.step`` holds the name of the current step (registration);
* staged: ``state.step`` holds a single tag owned by a feature and the current
  step is the first one whose value is still missing from ``state.data``
  (reminders, news, ticket replies, ...).

Step values are stored in ``state.data`` under the step name.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from campus_bot.schemas.state import IDLE_STEP, ConversationState
from campus_bot.services.result import Result

Validator = Callable[[str, dict[str, str]], Result[str]]
Prompt = Callable[..., Awaitable[None]]


class Transition(str, Enum):
    ADVANCE = "advance"
    STAY = "stay"
    BACK = "back"
    CANCEL = "cancel"
    COMPLETE = "complete"


class WizardInactiveError(Exception):
    def __init__(self, wizard: str, step: str):
        self.wizard = wizard
        self.step = step
        super().__init__(f"Wizard {wizard} does not own step {step!r}")


def required_text(error: str = "Пожалуйста, введи текст") -> Validator:
    """Accept any non-empty input."""

    def validate(value: str, data: dict[str, str]) -> Result[str]:
        if not value:
            return Result.failure(error, "empty")
        return Result.success(value)

    return validate


@dataclass(frozen=True)
class WizardStep:
    name: str
    validate: Validator = required_text()
    accepts_text: bool = True
    accepts_choice: bool = False
    prompt: Optional[Prompt] = None


@dataclass
class StepOutcome:
    transition: Transition
    step: Optional[WizardStep] = None  # step that is current after the transition
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


class Wizard:
    def __init__(
        self,
        name: str,
        steps: Sequence[WizardStep],
        *,
        step_tag: Optional[str] = None,
        done_step: str = IDLE_STEP,
        context_keys: Sequence[str] = (),
    ):
        if not steps:
            raise ValueError(f"Wizard {name} needs at least one step")
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Wizard {name} has duplicate step names")

        self.name = name
        self.steps = tuple(steps)
        self.step_tag = step_tag
        self.done_step = done_step
        self.context_keys = tuple(context_keys)
        self._index = {step.name: i for i, step in enumerate(self.steps)}

    @property
    def first(self) -> WizardStep:
        return self.steps[0]

    def owns(self, state: Optional[ConversationState]) -> bool:
        if state is None:
            return False
        if self.step_tag is not None:
            return state.step == self.step_tag
        return state.step in self._index

    def current(self, state: ConversationState) -> Optional[WizardStep]:
        if not self.owns(state):
            return None
        if self.step_tag is None:
            return self.steps[self._index[state.step]]
        data = state.ensure_data()
        for step in self.steps:
            if not data.get(step.name):
                return step
        return self.steps[-1]

    def start(self, state: ConversationState, **context: str) -> WizardStep:
        """Enter the flow at its first step, forgetting values from an earlier run."""
        data = state.ensure_data()
        for step in self.steps:
            data.pop(step.name, None)
        for key in self.context_keys:
            data.pop(key, None)
        data.update(context)
        state.step = self.step_tag if self.step_tag is not None else self.first.name
        return self.first

    def accept_text(self, state: ConversationState, text: str) -> StepOutcome:
        return self._accept(state, text, choice=False)

    def accept_choice(self, state: ConversationState, value: str) -> StepOutcome:
        return self._accept(state, value, choice=True)

    def _accept(self, state: ConversationState, raw: str, choice: bool) -> StepOutcome:
        step = self._require_current(state)
        if (choice and not step.accepts_choice) or (not choice and not step.accepts_text):
            return StepOutcome(Transition.STAY, step, error_code="wrong_input")

        data = state.ensure_data()
        result = step.validate((raw or "").strip(), data)
        if not result.ok:
            return StepOutcome(Transition.STAY, step, result.error, result.error_code)

        data[step.name] = result.value
        index = self._index[step.name]
        if index + 1 >= len(self.steps):
            return StepOutcome(Transition.COMPLETE, step)

        following = self.steps[index + 1]
        if self.step_tag is None:
            state.step = following.name
        return StepOutcome(Transition.ADVANCE, self.current(state) or following)

    def back(self, state: ConversationState) -> StepOutcome:
        """Return to the previous step, discarding the value of the step being left."""
        step = self._require_current(state)
        index = self._index[step.name]
        if index == 0:
            return StepOutcome(Transition.STAY, step)

        data = state.ensure_data()
        data.pop(step.name, None)
        previous = self.steps[index - 1]
        if self.step_tag is None:
            state.step = previous.name
        else:
            # staged position is derived from data, so the target value has to go
            data.pop(previous.name, None)
        return StepOutcome(Transition.BACK, previous)

    def cancel(self, state: ConversationState) -> StepOutcome:
        state.step = IDLE_STEP
        state.data = {}
        return StepOutcome(Transition.CANCEL)

    def finish(self, state: ConversationState) -> StepOutcome:
        data = state.ensure_data()
        for step in self.steps:
            data.pop(step.name, None)
        for key in self.context_keys:
            data.pop(key, None)
        state.step = self.done_step
        return StepOutcome(Transition.COMPLETE)

    def discard(self, state: ConversationState, name: str) -> None:
        """Forget a collected value, e.g. when a later check rejects it."""
        state.ensure_data().pop(name, None)
        if self.step_tag is None and self.owns(state):
            state.step = name

    def values(self, state: ConversationState) -> dict[str, str]:
        data = state.ensure_data()
        return {step.name: data.get(step.name, "") for step in self.steps}

    def context(self, state: ConversationState, key: str) -> str:
        return state.ensure_data().get(key, "")

    async def render(self, state: ConversationState, *args) -> None:
        """Show the prompt of the current step."""
        step = self.current(state)
        if step is not None and step.prompt is not None:
            await step.prompt(*args)

    def _require_current(self, state: ConversationState) -> WizardStep:
        step = self.current(state)
        if step is None:
            raise WizardInactiveError(self.name, state.step)
        return step

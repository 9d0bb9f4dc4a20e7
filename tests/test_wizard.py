import asyncio
from unittest.mock import AsyncMock

import pytest

from campus_bot.bot.wizard import Transition, Wizard, WizardInactiveError, WizardStep, required_text
from campus_bot.schemas.state import ConversationState
from campus_bot.services.result import Result


def digits_only(value, data):
    if not value.isdigit():
        return Result.failure("digits please", "not_digits")
    return Result.success(value)


@pytest.fixture
def tagged():
    return Wizard(
        "profile",
        [
            WizardStep("name"),
            WizardStep("age", validate=digits_only),
            WizardStep("color", accepts_text=False, accepts_choice=True),
        ],
        done_step="completed",
    )


@pytest.fixture
def staged():
    return Wizard(
        "note",
        [WizardStep("title"), WizardStep("body", accepts_choice=True)],
        step_tag="note_create",
        context_keys=("note_target",),
    )


class TestWizardDefinition:
    def test_needs_steps(self):
        with pytest.raises(ValueError):
            Wizard("empty", [])

    def test_duplicate_step_names_rejected(self):
        with pytest.raises(ValueError):
            Wizard("dup", [WizardStep("a"), WizardStep("a")])

    def test_required_text(self):
        validate = required_text("empty!")
        assert validate("", {}).error == "empty!"
        assert validate("x", {}).value == "x"


class TestTaggedWizard:
    def test_start_sets_first_step(self, tagged):
        state = ConversationState()
        tagged.start(state)
        assert state.step == "name"
        assert tagged.owns(state)
        assert tagged.current(state).name == "name"

    def test_advance_stores_trimmed_value(self, tagged):
        state = ConversationState()
        tagged.start(state)
        outcome = tagged.accept_text(state, "  Иван  ")
        assert outcome.transition == Transition.ADVANCE
        assert outcome.step.name == "age"
        assert state.step == "age"
        assert state.data["name"] == "Иван"

    def test_invalid_input_stays_without_writing(self, tagged):
        state = ConversationState(step="age", data={"name": "Иван"})
        outcome = tagged.accept_text(state, "abc")
        assert outcome.transition == Transition.STAY
        assert outcome.error == "digits please"
        assert outcome.error_code == "not_digits"
        assert not outcome.ok
        assert state.step == "age"
        assert "age" not in state.data

    def test_choice_only_step_rejects_text(self, tagged):
        state = ConversationState(step="color", data={"name": "a", "age": "1"})
        outcome = tagged.accept_text(state, "red")
        assert outcome.transition == Transition.STAY
        assert outcome.error is None
        assert outcome.error_code == "wrong_input"
        assert "color" not in state.data

    def test_text_only_step_rejects_choice(self, tagged):
        state = ConversationState(step="name")
        outcome = tagged.accept_choice(state, "Иван")
        assert outcome.transition == Transition.STAY
        assert state.step == "name"

    def test_last_step_completes_without_moving(self, tagged):
        state = ConversationState(step="color", data={"name": "a", "age": "1"})
        outcome = tagged.accept_choice(state, "red")
        assert outcome.transition == Transition.COMPLETE
        assert state.step == "color"
        assert tagged.values(state) == {"name": "a", "age": "1", "color": "red"}

    def test_back_discards_only_the_step_being_left(self, tagged):
        state = ConversationState(step="color", data={"name": "a", "age": "1", "color": "blue"})
        outcome = tagged.back(state)
        assert outcome.transition == Transition.BACK
        assert outcome.step.name == "age"
        assert state.step == "age"
        assert state.data == {"name": "a", "age": "1"}

    def test_back_on_first_step_stays(self, tagged):
        state = ConversationState(step="name")
        assert tagged.back(state).transition == Transition.STAY
        assert state.step == "name"

    def test_cancel_clears_everything(self, tagged):
        state = ConversationState(step="age", data={"name": "a", "unrelated": "x"})
        tagged.cancel(state)
        assert state.step == ""
        assert state.data == {}

    def test_finish_moves_to_done_step(self, tagged):
        state = ConversationState(step="color", data={"name": "a", "age": "1", "color": "red", "other": "keep"})
        tagged.finish(state)
        assert state.step == "completed"
        assert state.data == {"other": "keep"}
        assert not tagged.owns(state)

    def test_accept_when_inactive_raises(self, tagged):
        with pytest.raises(WizardInactiveError):
            tagged.accept_text(ConversationState(), "x")

    def test_discard_returns_to_step(self, tagged):
        state = ConversationState(step="color", data={"name": "a", "age": "1"})
        tagged.discard(state, "age")
        assert state.step == "age"
        assert "age" not in state.data


class TestStagedWizard:
    def test_start_keeps_context_and_resets_values(self, staged):
        state = ConversationState(data={"title": "old", "foreign": "x"})
        staged.start(state, note_target="N-1")
        assert state.step == "note_create"
        assert state.data == {"foreign": "x", "note_target": "N-1"}
        assert staged.context(state, "note_target") == "N-1"

    def test_position_follows_missing_values(self, staged):
        state = ConversationState()
        staged.start(state)
        assert staged.accept_text(state, "Заголовок").transition == Transition.ADVANCE
        assert state.step == "note_create"
        assert staged.current(state).name == "body"
        assert staged.accept_choice(state, "Текст").transition == Transition.COMPLETE

    def test_back_drops_previous_value_too(self, staged):
        state = ConversationState(step="note_create", data={"title": "t"})
        outcome = staged.back(state)
        assert outcome.step.name == "title"
        assert staged.current(state).name == "title"
        assert "title" not in state.data

    def test_finish_returns_to_idle_and_drops_context(self, staged):
        state = ConversationState(step="note_create", data={"title": "t", "body": "b", "note_target": "N-1"})
        staged.finish(state)
        assert state.step == ""
        assert state.data == {}

    def test_discard_keeps_tag(self, staged):
        state = ConversationState(step="note_create", data={"title": "t", "body": "b"})
        staged.discard(state, "body")
        assert state.step == "note_create"
        assert staged.current(state).name == "body"

    def test_does_not_own_other_steps(self, staged):
        assert not staged.owns(ConversationState(step="title"))
        assert not staged.owns(None)


class TestRender:
    def test_render_calls_current_prompt(self):
        first, second = AsyncMock(), AsyncMock()
        wizard = Wizard("w", [WizardStep("a", prompt=first), WizardStep("b", prompt=second)])
        state = ConversationState(step="b")

        asyncio.run(wizard.render(state, "request", "responder"))

        second.assert_awaited_once_with("request", "responder")
        first.assert_not_called()

    def test_render_without_owner_is_noop(self):
        prompt = AsyncMock()
        wizard = Wizard("w", [WizardStep("a", prompt=prompt)])
        asyncio.run(wizard.render(ConversationState(), "request", "responder"))
        prompt.assert_not_called()

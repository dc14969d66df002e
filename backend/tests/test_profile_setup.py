"""Tests for profile_setup.py.

All Claude API calls are mocked. No network access occurs during these tests.
"""

import pytest

import profile_setup
from models import (
    ConversationTurn,
    DietaryPreference,
    InterestCategory,
    MobilityType,
    TimeWindow,
    TransportMode,
    TravelPace,
    UserProfile,
)
from profile_setup import ProfileSetupWizard, WizardState

# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


class _MockClaudeClient:
    """Minimal mock of AsyncAnthropic that replays canned replies in order."""

    def __init__(self, replies):
        self._replies = list(replies)
        self.calls = []

        outer = self

        class _Messages:
            async def create(self, **kwargs):
                outer.calls.append(kwargs)
                content = outer._replies.pop(0)

                class _Response:
                    class _Content:
                        text = content

                    content = [_Content()]

                return _Response()

        self.messages = _Messages()


def _complete_profile(**overrides):
    fields = dict(
        mobility=MobilityType.STANDARD,
        avoid_stairs=False,
        preferred_transport=[TransportMode.WALK],
        budget_level=1,
        travel_pace=TravelPace.MEDIUM,
        interests={InterestCategory.ART_MUSEUMS: 1.0},
        dietary=DietaryPreference(),
        time_window=TimeWindow(start_hour=9, end_hour=18),
    )
    fields.update(overrides)
    return UserProfile(**fields)


# ---------------------------------------------------------------------------
# Unit tests: profile model
# ---------------------------------------------------------------------------


def test_empty_profile_misses_every_field():
    profile = UserProfile()
    assert profile.missing_fields() == list(profile_setup.PROFILE_FIELDS)
    assert profile.completion_percentage() == 0
    assert not profile.is_complete()


def test_complete_profile():
    profile = _complete_profile()
    assert profile.is_complete()
    assert profile.completion_percentage() == 100


def test_field_schema_for_budget_level():
    schema = profile_setup.field_schema("budget_level")
    assert schema["type"] == "integer"
    assert schema["minimum"] == 0
    assert schema["maximum"] == 3


def test_extract_json_object_with_commentary():
    text = 'Sure! {"budget_level": 2} Hope that helps.'
    assert profile_setup._extract_json_object(text) == {"budget_level": 2}


def test_extract_json_object_invalid():
    assert profile_setup._extract_json_object("not json at all") is None


# ---------------------------------------------------------------------------
# Unit tests: wizard state machine
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_question_is_about_mobility():
    claude = _MockClaudeClient(["Do you have any mobility needs we should know about?"])
    wizard = ProfileSetupWizard(UserProfile(), claude_client=claude)

    question = await wizard.ask_next_question()

    assert question == "Do you have any mobility needs we should know about?"
    assert wizard.current_field == "mobility"
    assert wizard.state is WizardState.ASKING
    assert wizard.history == [ConversationTurn(role="assistant", content=question)]
    assert claude.calls[0]["model"] == profile_setup.WIZARD_MODEL


@pytest.mark.asyncio
async def test_answer_updates_profile_and_history():
    claude = _MockClaudeClient(["How do you get around?", '"mobility": "standard"}'])
    wizard = ProfileSetupWizard(UserProfile(), claude_client=claude)

    await wizard.ask_next_question()
    outcome = await wizard.submit_answer("I walk fine, no issues")

    assert outcome.success
    assert outcome.field == "mobility"
    assert outcome.next_field == "avoid_stairs"
    assert wizard.profile.mobility is MobilityType.STANDARD
    assert wizard.state is WizardState.UPDATED
    assert [t.role for t in wizard.history] == ["assistant", "user"]
    # The parse call is prefilled with "{".
    assert claude.calls[1]["messages"][-1] == {"role": "assistant", "content": "{"}


@pytest.mark.asyncio
async def test_non_standard_mobility_skips_avoid_stairs():
    claude = _MockClaudeClient(["Mobility?", '"mobility": "wheelchair"}'])
    wizard = ProfileSetupWizard(UserProfile(), claude_client=claude)

    await wizard.ask_next_question()
    outcome = await wizard.submit_answer("I use a wheelchair")

    assert outcome.success
    assert wizard.profile.avoid_stairs is True
    assert outcome.next_field == "preferred_transport"
    assert wizard.profile.needs_step_free_route


@pytest.mark.asyncio
async def test_malformed_reply_keeps_field_pending():
    claude = _MockClaudeClient(
        ["What's your budget?", "I am not sure what you mean", '"budget_level": 2}']
    )
    profile = _complete_profile(budget_level=None)
    wizard = ProfileSetupWizard(profile, claude_client=claude)

    await wizard.ask_next_question()
    assert wizard.current_field == "budget_level"

    outcome = await wizard.submit_answer("hmm")
    assert not outcome.success
    assert outcome.error
    assert outcome.next_field == "budget_level"
    assert wizard.state is WizardState.ASKING
    assert wizard.profile.budget_level is None

    outcome = await wizard.submit_answer("medium, around 2")
    assert outcome.success
    assert outcome.is_complete
    assert wizard.profile.budget_level == 2


@pytest.mark.asyncio
async def test_out_of_range_value_is_rejected():
    claude = _MockClaudeClient(["Budget?", '"budget_level": 7}'])
    wizard = ProfileSetupWizard(_complete_profile(budget_level=None), claude_client=claude)

    await wizard.ask_next_question()
    outcome = await wizard.submit_answer("very expensive")

    assert not outcome.success
    assert "budget_level" in outcome.error
    assert wizard.profile.budget_level is None


@pytest.mark.asyncio
async def test_interests_and_time_window_are_validated():
    claude = _MockClaudeClient(
        [
            "What do you enjoy?",
            '"interests": {"nature_parks": 1.0, "gastronomy": 0.5}}',
            "When do you like to start?",
            '"time_window": {"start_hour": 8, "end_hour": 20}}',
        ]
    )
    profile = _complete_profile(interests={}, time_window=None)
    wizard = ProfileSetupWizard(profile, claude_client=claude)

    await wizard.ask_next_question()
    await wizard.submit_answer("Parks and good food")
    await wizard.ask_next_question()
    outcome = await wizard.submit_answer("8am to 8pm")

    assert outcome.is_complete
    assert wizard.profile.interests == {
        InterestCategory.NATURE_PARKS: 1.0,
        InterestCategory.GASTRONOMY: 0.5,
    }
    assert wizard.profile.time_window == TimeWindow(start_hour=8, end_hour=20)


@pytest.mark.asyncio
async def test_complete_profile_returns_no_question():
    claude = _MockClaudeClient([])
    wizard = ProfileSetupWizard(_complete_profile(), claude_client=claude)

    assert await wizard.ask_next_question() is None
    assert wizard.state is WizardState.IDLE
    assert claude.calls == []


@pytest.mark.asyncio
async def test_answer_without_question_raises():
    wizard = ProfileSetupWizard(UserProfile(), claude_client=_MockClaudeClient([]))
    with pytest.raises(RuntimeError):
        await wizard.submit_answer("wheelchair")


@pytest.mark.asyncio
async def test_asking_twice_raises():
    claude = _MockClaudeClient(["Mobility?"])
    wizard = ProfileSetupWizard(UserProfile(), claude_client=claude)
    await wizard.ask_next_question()
    with pytest.raises(RuntimeError):
        await wizard.ask_next_question()


@pytest.mark.asyncio
async def test_resume_with_pending_field():
    claude = _MockClaudeClient(['"travel_pace": "HIGH"}'])
    history = [ConversationTurn(role="assistant", content="How fast do you travel?")]
    wizard = ProfileSetupWizard(
        _complete_profile(travel_pace=None),
        claude_client=claude,
        history=history,
        pending_field="travel_pace",
    )

    outcome = await wizard.submit_answer("I like to see a lot, fast")

    assert outcome.success
    assert wizard.profile.travel_pace is TravelPace.HIGH
    assert len(wizard.history) == 2
    # The caller's list is not modified.
    assert len(history) == 1


def test_unknown_pending_field_raises():
    with pytest.raises(ValueError, match="Unknown profile field"):
        ProfileSetupWizard(
            UserProfile(),
            claude_client=_MockClaudeClient([]),
            pending_field="favourite_colour",
        )


def test_incoming_non_standard_mobility_fills_avoid_stairs():
    """A profile handed in with avoid_stairs unset agrees with next_field()."""
    profile = _complete_profile(mobility=MobilityType.WHEELCHAIR, avoid_stairs=None)
    wizard = ProfileSetupWizard(profile, claude_client=_MockClaudeClient([]))

    assert wizard.next_field() is None
    assert wizard.profile.avoid_stairs is True
    assert wizard.profile.is_complete()
    assert wizard.profile.completion_percentage() == 100


def test_incoming_standard_mobility_still_asks_avoid_stairs():
    profile = _complete_profile(avoid_stairs=None)
    wizard = ProfileSetupWizard(profile, claude_client=_MockClaudeClient([]))

    assert wizard.next_field() == "avoid_stairs"
    assert wizard.profile.avoid_stairs is None


def test_explicit_avoid_stairs_is_kept():
    profile = _complete_profile(mobility=MobilityType.STROLLER, avoid_stairs=False)
    wizard = ProfileSetupWizard(profile, claude_client=_MockClaudeClient([]))
    assert wizard.profile.avoid_stairs is False

"""Conversational traveller-profile setup.

The wizard fills a ``UserProfile`` one field at a time with two Claude calls
per field:
  1. Ask: Claude phrases one friendly question for the next unfilled field.
  2. Parse: Claude turns the traveller's free-text answer into JSON for
     that field only. The JSON is validated with pydantic before it touches
     the profile.

State machine (``WizardState``)::

    IDLE --ask--> ASKING --answer--> PARSING --> VALIDATING --ok--> UPDATED
                    ^                               |
                    +---------- invalid answer -----+

The conversation history is an append-only log of ``ConversationTurn``s.
Both it and the profile can be handed back in by the caller, so the HTTP
layer stays stateless.
"""

import json
import logging
import os
import re
from enum import Enum
from typing import Annotated, Any

from anthropic import AsyncAnthropic
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from models import (
    PROFILE_FIELDS,
    ConversationTurn,
    DietaryPreference,
    InterestCategory,
    MobilityType,
    TimeWindow,
    TransportMode,
    TravelPace,
    UserProfile,
)

logger = logging.getLogger(__name__)

# Claude model used for both question phrasing and answer parsing.
WIZARD_MODEL: str = "claude-haiku-4-5-20251001"
QUESTION_MAX_TOKENS: int = 200
PARSE_MAX_TOKENS: int = 300
# Number of most recent turns quoted back to Claude.
HISTORY_WINDOW: int = 8


class WizardState(str, Enum):
    IDLE = "idle"
    ASKING = "asking"
    PARSING = "parsing"
    VALIDATING = "validating"
    UPDATED = "updated"


class AnswerOutcome(BaseModel):
    """Result of feeding one answer to the wizard."""

    success: bool
    field: str
    error: str | None = None
    next_field: str | None = None
    is_complete: bool = False


# ---------------------------------------------------------------------------
# Field schemas
# ---------------------------------------------------------------------------

_FIELD_ADAPTERS: dict[str, TypeAdapter] = {
    "mobility": TypeAdapter(MobilityType),
    "avoid_stairs": TypeAdapter(bool),
    "preferred_transport": TypeAdapter(
        Annotated[list[TransportMode], Field(min_length=1)]
    ),
    "budget_level": TypeAdapter(Annotated[int, Field(ge=0, le=3)]),
    "travel_pace": TypeAdapter(TravelPace),
    "interests": TypeAdapter(
        Annotated[
            dict[InterestCategory, Annotated[float, Field(ge=0, le=1)]],
            Field(min_length=1),
        ]
    ),
    "dietary": TypeAdapter(DietaryPreference),
    "time_window": TypeAdapter(TimeWindow),
}

_FIELD_HINTS: dict[str, str] = {
    "mobility": "MobilityType: " + ", ".join(m.value for m in MobilityType),
    "avoid_stairs": "true or false",
    "preferred_transport": "TransportMode list: "
    + ", ".join(m.value for m in TransportMode),
    "budget_level": "0 (free), 1 (low), 2 (medium), 3 (high)",
    "travel_pace": "TravelPace: LOW, MEDIUM, HIGH",
    "interests": "InterestCategory: " + ", ".join(c.value for c in InterestCategory),
    "dietary": "vegan, vegetarian, gluten_free, halal, kosher flags and an allergies list",
    "time_window": "hours from 0 to 23 (e.g. 9 for 9:00 AM, 18 for 6:00 PM)",
}

_JSON_SYSTEM_PROMPT = (
    "You convert a traveller's answers into profile data. You respond with "
    "ONLY a single valid JSON object. No markdown, no explanation."
)

_QUESTION_PROMPT = """\
You are a friendly travel assistant filling in a traveller's profile.

Conversation so far:
{history}

The next thing to find out is the field "{field}".
Field schema: {schema}
Allowed values: {hints}

Ask the traveller ONE short, friendly question that gets this information. \
Use plain words, never the raw enum values. Respond with ONLY the question.
"""

_PARSE_PROMPT = """\
The traveller is answering a question about the profile field "{field}".

Conversation so far:
{history}

Field schema: {schema}
Allowed values: {hints}

Read the traveller's LAST answer and return a JSON object containing only \
this field, strictly following the schema. Examples:
- {{"mobility": "wheelchair"}}
- {{"avoid_stairs": true}}
- {{"preferred_transport": ["walk", "public_transit"]}}
- {{"budget_level": 2}}
- {{"travel_pace": "MEDIUM"}}
- {{"interests": {{"nature_parks": 1.0, "gastronomy": 1.0}}}}
- {{"dietary": {{"vegan": false, "vegetarian": true, "gluten_free": false, \
"halal": false, "kosher": false, "allergies": []}}}}
- {{"time_window": {{"start_hour": 9, "end_hour": 18}}}}
"""


def field_schema(field: str) -> dict[str, Any]:
    """Returns the JSON schema for one profile field."""
    return _FIELD_ADAPTERS[field].json_schema()


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------


class ProfileSetupWizard:
    """Drives the ask → parse → validate → update loop for one profile."""

    def __init__(
        self,
        profile: UserProfile,
        *,
        claude_client: AsyncAnthropic | None = None,
        history: list[ConversationTurn] | None = None,
        pending_field: str | None = None,
    ):
        if pending_field is not None and pending_field not in _FIELD_ADAPTERS:
            raise ValueError(f"Unknown profile field: {pending_field!r}")
        self.profile = profile.model_copy(deep=True)
        self._fill_avoid_stairs()
        self._history: list[ConversationTurn] = list(history or [])
        self._claude = claude_client or AsyncAnthropic(
            api_key=os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self.current_field = pending_field
        self.state = WizardState.ASKING if pending_field else WizardState.IDLE

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    def next_field(self) -> str | None:
        """Returns the next field to ask about, or None when done.

        ``avoid_stairs`` is only asked for standard mobility; every other
        mobility type has it set already (see ``_fill_avoid_stairs``).
        """
        missing = set(self.profile.missing_fields())
        for field in PROFILE_FIELDS:
            if field in missing:
                return field
        return None

    async def ask_next_question(self) -> str | None:
        """Generates the question for the next unfilled field.

        Returns:
            The question text, or None if the profile is complete.

        Raises:
            RuntimeError: If a question is already waiting for an answer.
        """
        if self.state is WizardState.ASKING:
            raise RuntimeError(
                f"A question about {self.current_field!r} is already pending."
            )
        field = self.next_field()
        if field is None:
            self.state = WizardState.IDLE
            return None

        prompt = _QUESTION_PROMPT.format(
            history=self._render_history(),
            field=field,
            schema=json.dumps(field_schema(field)),
            hints=_FIELD_HINTS[field],
        )
        logger.info("Profile setup: asking about %s", field)
        response = await self._claude.messages.create(
            model=WIZARD_MODEL,
            max_tokens=QUESTION_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
        question = response.content[0].text.strip()

        self._history.append(ConversationTurn(role="assistant", content=question))
        self.current_field = field
        self.state = WizardState.ASKING
        return question

    async def submit_answer(self, answer: str) -> AnswerOutcome:
        """Parses and applies the traveller's answer to the pending question.

        An answer Claude cannot turn into valid data leaves the same field
        pending and returns ``success=False``; the caller may ask again.

        Raises:
            RuntimeError: If no question is pending.
        """
        if self.state is not WizardState.ASKING or self.current_field is None:
            raise RuntimeError("No profile question is waiting for an answer.")

        field = self.current_field
        self._history.append(ConversationTurn(role="user", content=answer))

        self.state = WizardState.PARSING
        parsed = await self._parse_answer(field)

        self.state = WizardState.VALIDATING
        if parsed is None or field not in parsed:
            return self._reject(field, f"Could not understand the answer for {field}.")
        try:
            value = _FIELD_ADAPTERS[field].validate_python(parsed[field])
        except ValidationError as exc:
            logger.warning("Profile setup: invalid %s value: %s", field, exc)
            return self._reject(field, f"Invalid value for {field}.")

        self._apply(field, value)
        self.state = WizardState.UPDATED
        self.current_field = None

        next_field = self.next_field()
        logger.info(
            "Profile setup: %s updated, %d%% complete",
            field,
            self.profile.completion_percentage(),
        )
        return AnswerOutcome(
            success=True,
            field=field,
            next_field=next_field,
            is_complete=next_field is None,
        )

    async def _parse_answer(self, field: str) -> dict | None:
        prompt = _PARSE_PROMPT.format(
            field=field,
            history=self._render_history(),
            schema=json.dumps(field_schema(field)),
            hints=_FIELD_HINTS[field],
        )
        response = await self._claude.messages.create(
            model=WIZARD_MODEL,
            max_tokens=PARSE_MAX_TOKENS,
            system=_JSON_SYSTEM_PROMPT,
            messages=[
                {"role": "user", "content": prompt},
                {"role": "assistant", "content": "{"},
            ],
        )
        # Prepend the "{" we used as prefill.
        raw = "{" + response.content[0].text.strip()
        logger.info("Profile setup parse response: %s", raw[:300])
        return _extract_json_object(raw)

    def _apply(self, field: str, value: Any) -> None:
        setattr(self.profile, field, value)
        if field == "mobility":
            # Re-derived from the new mobility; standard mobility gets asked.
            self.profile.avoid_stairs = None
            self._fill_avoid_stairs()

    def _fill_avoid_stairs(self) -> None:
        """Sets ``avoid_stairs`` for non-standard mobility when it is unset."""
        if self.profile.avoid_stairs is None and self.profile.mobility not in (
            None,
            MobilityType.STANDARD,
        ):
            self.profile.avoid_stairs = True

    def _reject(self, field: str, error: str) -> AnswerOutcome:
        self.state = WizardState.ASKING
        return AnswerOutcome(
            success=False,
            field=field,
            error=error,
            next_field=field,
            is_complete=False,
        )

    def _render_history(self) -> str:
        turns = self._history[-HISTORY_WINDOW:]
        if not turns:
            return "(no conversation yet)"
        return "\n".join(f"{t.role}: {t.content}" for t in turns)


def _extract_json_object(text: str) -> dict | None:
    """Extracts a JSON object from text that may contain extra commentary."""
    text = text.strip()
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, ValueError):
        pass

    # Find the outermost {...} block in the text.
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            parsed = json.loads(match.group())
            if isinstance(parsed, dict):
                return parsed
        except (json.JSONDecodeError, ValueError):
            pass

    return None

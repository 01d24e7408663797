"""
scriptswift/session.py — Conversation state machine
===================================================
ConversationSession owns one cold-call script as it is built turn by turn:
form → customer context → opening turn → (pick a response → next turn)*.

States:
    awaiting_input  — no conversation yet (initial, and after clear())
    turn_open       — current_turn has response options waiting for a pick
    turn_resolving  — a response was picked; the next turn is being requested.
                      If that request fails the session stays here with
                      `stalled` set until retry_next_turn() succeeds.
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from datetime import datetime

from .config import ScriptConfig
from .customer_context import resolve_customer_context
from .errors import ScriptSwiftError, StateError, ValidationError
from .prompt_builder import render_history
from .schemas import (
    CompletedScriptTurn,
    GenerateScriptInput,
    ProspectResponseOption,
    ScriptTurn,
    SessionContext,
)
from .script_generator import generate_next_turn, generate_opening_turn
from .validation import validate_form

logger = logging.getLogger("scriptswift.session")

AWAITING_INPUT = "awaiting_input"
TURN_OPEN = "turn_open"
TURN_RESOLVING = "turn_resolving"
STATES = (AWAITING_INPUT, TURN_OPEN, TURN_RESOLVING)


# Session whose request is running in the current task (asyncio tasks and
# to_thread copy the context, so concurrent sessions stay separate)
_current_session: ContextVar[ConversationSession | None] = ContextVar("scriptswift_session", default=None)


class SessionLogHandler(logging.Handler):
    """Routes scriptswift.* log records into the event list of the session that produced them."""

    def emit(self, record):
        session = _current_session.get()
        if session is None:
            return
        name = record.name  # e.g. "scriptswift.llm", "scriptswift.customer_context"
        phase = name.replace("scriptswift.", "") if name.startswith("scriptswift.") else name
        session.add_event(phase, record.getMessage(), record.levelname.lower())


# Install the handler once on the "scriptswift" logger
_session_handler = SessionLogHandler()
_session_handler.setLevel(logging.DEBUG)
_package_logger = logging.getLogger("scriptswift")
_package_logger.addHandler(_session_handler)
_package_logger.setLevel(logging.DEBUG)


class ConversationSession:
    """One conversation: session context, completed history and the open turn.

    Collaborators default to the real resolver and generators; tests pass
    fakes with the same async signatures.
    """

    def __init__(
        self,
        session_id: str | None = None,
        resolve=None,
        generate_opening=None,
        generate_next=None,
    ):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.created_at = datetime.now()

        self._resolve = resolve or resolve_customer_context
        self._generate_opening = generate_opening or generate_opening_turn
        self._generate_next = generate_next or generate_next_turn

        self.state = AWAITING_INPUT
        self.form: GenerateScriptInput | None = None
        self.context: SessionContext | None = None
        self._history: list[CompletedScriptTurn] = []
        self.current_turn: ScriptTurn | None = None
        self.stalled = False
        self.last_error: dict | None = None

        # Bumped by clear(); results from requests started before a clear are dropped
        self._generation = 0
        self._starting = False

        # Event log for frontend visibility
        self.events: list[dict] = []

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------
    @property
    def history(self) -> tuple[CompletedScriptTurn, ...]:
        return tuple(self._history)

    @property
    def has_open_turn(self) -> bool:
        return self.current_turn is not None

    def add_event(self, phase: str, message: str, level: str = "info"):
        """Append a session event for real-time frontend display."""
        self.events.append({
            "idx": len(self.events),
            "time": datetime.now().strftime("%H:%M:%S"),
            "phase": phase,
            "message": message,
            "level": level,
        })

    def _activate(self):
        """Route log records from the current task into this session."""
        return _current_session.set(self)

    def _deactivate(self, token):
        """Stop routing log records into this session."""
        _current_session.reset(token)

    def _record_error(self, error: Exception):
        if isinstance(error, ScriptSwiftError):
            self.last_error = error.to_dict()
        else:
            self.last_error = {"error": str(error), "type": type(error).__name__, "retryable": False}

    def render_history(self) -> str:
        """History as sent to the next-turn generator."""
        return render_history(self._history)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def start(self, form_data) -> ScriptTurn:
        """Validate the form, resolve the customer once, and open the first turn.

        Args:
            form_data: raw camelCase form dict, or an already validated
                GenerateScriptInput.

        Returns:
            The opening ScriptTurn (also stored as current_turn).

        Raises:
            StateError: a conversation is already running or starting.
            ValidationError: the form is incomplete; nothing changes.
            FetchError / NoOutputError: resolution or generation failed;
                the session stays in awaiting_input.
        """
        if self.state != AWAITING_INPUT or self._starting:
            raise StateError("A conversation is already in progress. Clear it before starting a new one.")

        form = validate_form(form_data)

        token = self._activate()
        self._starting = True
        generation = self._generation
        try:
            self.add_event("start", f"Starting script for {form.business_info.business_name}")
            customer = await self._resolve(form.customer_info)
            context = SessionContext(
                business_info=form.business_info,
                customer_context=customer.summary,
                customer_company_name=customer.company_name or None,
            )
            opening = await self._generate_opening(context)
        except Exception as e:
            if generation == self._generation:
                self._record_error(e)
            logger.error(f"Failed to start conversation: {e}")
            raise
        finally:
            if generation == self._generation:
                self._starting = False
            self._deactivate(token)

        if generation != self._generation:
            raise StateError("The conversation was cleared before the opening turn arrived.")

        self.form = form
        self.context = context
        self._history = []
        self.current_turn = opening
        self.stalled = False
        self.last_error = None
        self.state = TURN_OPEN
        self.add_event("start", "Opening turn ready")
        return opening

    async def select_response(self, option) -> ScriptTurn:
        """Fix the open turn in history with `option` and request the next turn.

        The completed turn is appended before the request goes out and is not
        rolled back if the request fails; use retry_next_turn() then.

        Raises:
            StateError: no open turn (awaiting input or already resolving).
            ValidationError: `option` is not one of the open turn's options.
        """
        if self.state != TURN_OPEN or self.current_turn is None:
            raise StateError(f"Cannot select a response while {self.state}.")

        if isinstance(option, dict):
            option = ProspectResponseOption.from_dict(option)
        if option not in self.current_turn.prospect_response_options:
            raise ValidationError("option", "The selected response is not one of the current options.")

        self._history.append(CompletedScriptTurn.from_turn(self.current_turn, option))
        self.current_turn = None
        self.state = TURN_RESOLVING
        self.stalled = False
        self.add_event("turn", f"Prospect: {option.response_text} ({option.response_type})")

        return await self._request_next_turn(option)

    async def retry_next_turn(self) -> ScriptTurn:
        """Re-request the next turn after a failed select_response().

        Uses the last history entry's chosen response; history does not grow.
        """
        if self.state != TURN_RESOLVING or not self.stalled:
            raise StateError("There is no failed turn request to retry.")

        last = self._history[-1].chosen_prospect_response
        self.stalled = False
        self.add_event("turn", "Retrying next turn")
        return await self._request_next_turn(last)

    async def _request_next_turn(self, last_response: ProspectResponseOption) -> ScriptTurn:
        generation = self._generation
        token = self._activate()
        try:
            turn = await self._generate_next(self.context, list(self._history), last_response)
        except Exception as e:
            if generation == self._generation:
                self.stalled = True
                self._record_error(e)
            logger.error(f"Next turn request failed after {len(self._history)} turns: {e}")
            raise
        finally:
            self._deactivate(token)

        if generation != self._generation:
            raise StateError("The conversation was cleared before the next turn arrived.")

        self.current_turn = turn
        self.last_error = None
        self.state = TURN_OPEN
        self.add_event("turn", f"Turn {len(self._history) + 1} ready")
        return turn

    def clear(self):
        """Discard everything and return to awaiting_input. Safe to call twice."""
        if (
            self.state == AWAITING_INPUT
            and not self._starting
            and self.context is None
            and self.last_error is None
        ):
            return
        self._generation += 1
        self._starting = False
        self.form = None
        self.context = None
        self._history = []
        self.current_turn = None
        self.stalled = False
        self.last_error = None
        self.state = AWAITING_INPUT
        self.events = []
        self.add_event("clear", "Conversation cleared")
        logger.info(f"Session {self.session_id} cleared")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_status(self) -> dict:
        """Return current conversation state."""
        return {
            "session_id": self.session_id,
            "state": self.state,
            "stalled": self.stalled,
            "created_at": self.created_at.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "history": [t.to_dict() for t in self._history],
            "current_turn": self.current_turn.to_dict() if self.current_turn else None,
            "last_error": self.last_error,
        }

    def is_expired(self, max_age_seconds: int = ScriptConfig.SESSION_MAX_AGE_SECONDS) -> bool:
        """Check if session has expired."""
        elapsed = (datetime.now() - self.created_at).total_seconds()
        return elapsed > max_age_seconds

"""
Debounced name uniqueness validation.

The state machine is a frozen value moved by pure functions (evaluate,
resolve, fail); NameValidator only adds the debounce timer and the
network call around them.

    NEUTRAL -> CHECKING -> AVAILABLE | CONFLICT | ERROR
    any     -> NEUTRAL   (name reverted to original, or emptied)
    any     -> CHECKING  (new distinct name)
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from config import settings
from exceptions import AppError
from utils.text_utils import normalize_name

logger = structlog.get_logger(__name__)

NameCheck = Callable[[str, Optional[str]], Awaitable[bool]]


class ValidationPhase(str, Enum):
    NEUTRAL = "neutral"
    CHECKING = "checking"
    AVAILABLE = "available"
    CONFLICT = "conflict"
    ERROR = "error"


class NameValidationState(BaseModel):
    """
    Validator state.

    Attributes:
        phase: Current phase
        candidate: Normalized name the phase refers to
        last_checked: Normalized name of the last check issued (None after a revert)
        error: Transport error message in the ERROR phase
    """
    model_config = ConfigDict(frozen=True)

    phase: ValidationPhase = ValidationPhase.NEUTRAL
    candidate: str = ""
    last_checked: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_checking(self) -> bool:
        return self.phase is ValidationPhase.CHECKING

    @property
    def is_unique(self) -> Optional[bool]:
        if self.phase is ValidationPhase.AVAILABLE:
            return True
        if self.phase is ValidationPhase.CONFLICT:
            return False
        return None

    @property
    def has_checked(self) -> bool:
        return self.phase in (
            ValidationPhase.AVAILABLE,
            ValidationPhase.CONFLICT,
            ValidationPhase.ERROR,
        )


class NameValidationResult(BaseModel):
    """What the form shows next to the name field."""
    model_config = ConfigDict(frozen=True)

    is_checking: bool
    is_unique: Optional[bool]
    error: Optional[str]
    has_checked: bool

    @classmethod
    def from_state(cls, state: NameValidationState) -> "NameValidationResult":
        return cls(
            is_checking=state.is_checking,
            is_unique=state.is_unique,
            error=state.error,
            has_checked=state.has_checked
        )


# ===================
# TRANSITIONS
# ===================

def evaluate(
    state: NameValidationState,
    raw_name: Optional[str],
    original_name: Optional[str] = None
) -> tuple[NameValidationState, Optional[str]]:
    """
    Apply a debounced (stable) name.

    Returns:
        (next state, normalized name to check or None when no call is needed)
    """
    candidate = normalize_name(raw_name)

    if candidate == normalize_name(original_name):
        return NameValidationState(), None
    if candidate == state.last_checked:
        return state, None
    if not candidate:
        return NameValidationState(last_checked=""), None

    return NameValidationState(
        phase=ValidationPhase.CHECKING,
        candidate=candidate,
        last_checked=candidate
    ), candidate


def resolve(state: NameValidationState, name: str, is_unique: bool) -> NameValidationState:
    """Apply a check response. Responses for a superseded name are ignored."""
    if not state.is_checking or name != state.candidate:
        return state
    phase = ValidationPhase.AVAILABLE if is_unique else ValidationPhase.CONFLICT
    return state.model_copy(update={"phase": phase, "error": None})


def fail(state: NameValidationState, name: str, message: str) -> NameValidationState:
    """Apply a check failure. Uniqueness stays unresolved."""
    if not state.is_checking or name != state.candidate:
        return state
    return state.model_copy(update={"phase": ValidationPhase.ERROR, "error": message})


def blocks_submission(
    state: NameValidationState,
    raw_name: Optional[str],
    original_name: Optional[str] = None
) -> bool:
    """
    True if a form with raw_name must not be submitted yet.

    An unchanged name never blocks. A changed name blocks until a check for
    that exact name has come back available, so a result for an earlier
    name never clears a newer one.
    """
    candidate = normalize_name(raw_name)
    if candidate == normalize_name(original_name):
        return False
    if candidate != state.candidate:
        return True
    return state.is_checking or (state.has_checked and not state.is_unique)


# ===================
# DRIVER
# ===================

class NameValidator:
    """
    Debounced validator for one name field.

    Usage:
        validator = NameValidator(
            functools.partial(transport.check_name, "categories"),
            original_name=category.name,
            exclude_id=category_id,
        )
        validator.update(field_value)     # on every keystroke
        validator.result                  # render
        validator.can_submit(field_value) # gate the submit button
    """

    def __init__(
        self,
        check_name: NameCheck,
        original_name: Optional[str] = None,
        exclude_id: Optional[str] = None,
        delay: Optional[float] = None
    ):
        self._check_name = check_name
        self.original_name = original_name
        self.exclude_id = exclude_id
        self.delay = settings.name_check_debounce_seconds if delay is None else delay
        self._state = NameValidationState()
        self._debounce_task: Optional[asyncio.Task] = None
        self._check_task: Optional[asyncio.Task] = None
        self.checks_issued = 0

    @property
    def state(self) -> NameValidationState:
        return self._state

    @property
    def result(self) -> NameValidationResult:
        return NameValidationResult.from_state(self._state)

    def update(self, raw_name: Optional[str]) -> None:
        """Feed the current field value. Restarts the debounce timer."""
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce(raw_name))

    def can_submit(self, raw_name: Optional[str]) -> bool:
        return not blocks_submission(self._state, raw_name, self.original_name)

    def revalidate(self) -> None:
        """Re-issue the check for the current candidate, e.g. after an ERROR."""
        if self._state.phase is not ValidationPhase.ERROR:
            return
        candidate = self._state.candidate
        self._state = NameValidationState(
            phase=ValidationPhase.CHECKING,
            candidate=candidate,
            last_checked=candidate
        )
        self._start_check(candidate)

    async def wait_idle(self) -> None:
        """Wait for the pending debounce and any check it triggers."""
        while True:
            pending = [
                task for task in (self._debounce_task, self._check_task)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.wait(pending)

    def close(self) -> None:
        for task in (self._debounce_task, self._check_task):
            if task is not None and not task.done():
                task.cancel()

    async def _debounce(self, raw_name: Optional[str]) -> None:
        await asyncio.sleep(self.delay)
        self._state, to_check = evaluate(self._state, raw_name, self.original_name)
        if to_check is not None:
            self._start_check(to_check)

    def _start_check(self, name: str) -> None:
        self.checks_issued += 1
        self._check_task = asyncio.get_running_loop().create_task(self._check(name))

    async def _check(self, name: str) -> None:
        logger.debug("name_check_started", name=name, exclude_id=self.exclude_id)
        try:
            is_unique = await self._check_name(name, self.exclude_id)
        except AppError as e:
            logger.warning("name_check_failed", name=name, error=e.message)
            self._state = fail(self._state, name, e.message)
            return
        except Exception as e:
            logger.error(
                "name_check_unexpected_error",
                name=name,
                error=str(e),
                error_type=type(e).__name__
            )
            self._state = fail(self._state, name, str(e) or type(e).__name__)
            return
        logger.debug("name_check_finished", name=name, is_unique=is_unique)
        self._state = resolve(self._state, name, is_unique)

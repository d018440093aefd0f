"""
Rejection reason workflow for hospital blood requests.

A blood bank operator rejecting a request must give a reason.  This
module owns the interaction around that: the editable draft text,
the quick-fill presets, validation and the submit/cancel flow.  The
workflow does no persistence itself; the actual rejection is done by
an ``on_confirm`` callable supplied by the host (an API view or a
WebSocket consumer), and closing the form is the host's ``on_close``.

Validation notices go to a :class:`Notifier`.  Failures raised by
``on_confirm`` are written to this module's logger and swallowed so
the form stays open with the draft intact.
"""
from __future__ import annotations

import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 5
# Shown next to the text box; not enforced here.
MAX_REASON_LENGTH = 500

REASON_REQUIRED_MESSAGE = "Please provide a reason for rejection"
REASON_TOO_SHORT_MESSAGE = f"Reason must be at least {MIN_REASON_LENGTH} characters long"

SUBMIT_LABEL = "Reject Request"
SUBMITTING_LABEL = "Rejecting..."

# (key, button label, text placed in the draft)
QUICK_REASONS: tuple[tuple[str, str, str], ...] = (
    ("insufficient_stock", "Insufficient Stock", "Insufficient blood stock available"),
    ("wrong_blood_group", "Wrong Blood Group", "Incorrect blood group specified"),
    ("exceeds_limits", "Exceeds Limits", "Request exceeds approved limits"),
    ("cannot_fulfill", "Cannot Fulfill", "Cannot fulfill at this time"),
)


class SubmissionState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


class Notifier(Protocol):
    """Receives user-facing validation notices."""

    def error(self, message: str) -> None:
        ...


class ReasonValidationError(ValueError):
    """A rejection reason that is empty or too short."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def validate_reason(text: Optional[str]) -> str:
    """Return the trimmed reason or raise :class:`ReasonValidationError`."""
    reason = (text or "").strip()
    if not reason:
        raise ReasonValidationError(REASON_REQUIRED_MESSAGE, code="required")
    if len(reason) < MIN_REASON_LENGTH:
        raise ReasonValidationError(REASON_TOO_SHORT_MESSAGE, code="too_short")
    return reason


def quick_reason_text(preset: str) -> str:
    """Resolve a preset key or button label (or the canned text itself)."""
    for key, label, text in QUICK_REASONS:
        if preset in (key, label, text):
            return text
    raise ValueError(f"unknown quick reason: {preset!r}")


ConfirmCallback = Callable[[str], Union[Awaitable[Any], Any]]
CloseCallback = Callable[[], None]


class RejectionWorkflow:
    """Draft, validate and submit the reason for rejecting one request.

    One instance belongs to one open form.  All state is local and only
    ``submit`` suspends, so the workflow needs no locking when driven
    from a single event loop.
    """

    def __init__(
        self,
        *,
        on_confirm: ConfirmCallback,
        on_close: CloseCallback,
        notifier: Notifier,
        request_code: Optional[str] = None,
        is_open: bool = False,
    ) -> None:
        self.on_confirm = on_confirm
        self.on_close = on_close
        self.notifier = notifier
        self.request_code = request_code
        self.is_open = is_open
        self.draft = ""
        self.state = SubmissionState.IDLE

    # ------------------------------------------------------------------
    # Derived UI state
    # ------------------------------------------------------------------
    @property
    def is_submitting(self) -> bool:
        return self.state is SubmissionState.SUBMITTING

    @property
    def controls_disabled(self) -> bool:
        return self.is_submitting

    @property
    def can_submit(self) -> bool:
        return not self.is_submitting and bool(self.draft.strip())

    @property
    def submit_label(self) -> str:
        return SUBMITTING_LABEL if self.is_submitting else SUBMIT_LABEL

    def render(self) -> Optional[dict]:
        """View model for the form, or ``None`` while the form is closed."""
        if not self.is_open:
            return None
        disabled = self.controls_disabled
        return {
            'title': 'Reject Blood Request',
            'requestCode': self.request_code,
            'reason': self.draft,
            'charCount': len(self.draft),
            'maxLength': MAX_REASON_LENGTH,
            'minLength': MIN_REASON_LENGTH,
            'state': self.state.value,
            'inputDisabled': disabled,
            'quickReasons': [
                {'key': key, 'label': label, 'text': text, 'disabled': disabled}
                for key, label, text in QUICK_REASONS
            ],
            'cancel': {'label': 'Cancel', 'disabled': disabled},
            'submit': {'label': self.submit_label, 'disabled': not self.can_submit},
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def open(self, request_code: Optional[str] = None) -> None:
        if request_code is not None:
            self.request_code = request_code
        self.is_open = True

    def update_draft(self, text: str) -> bool:
        """Replace the draft as typed.  Ignored while closed or submitting."""
        if not self.is_open or self.controls_disabled:
            return False
        self.draft = text or ""
        return True

    def select_quick_reason(self, preset: str) -> bool:
        """Fill the draft with a canned reason.  Ignored while closed or submitting."""
        text = quick_reason_text(preset)
        if not self.is_open or self.controls_disabled:
            return False
        self.draft = text
        return True

    async def submit(self) -> None:
        """Validate the draft and hand it to ``on_confirm``.

        Does nothing while the form is closed.  A second call while a
        submit is already in flight is ignored, so ``on_confirm`` runs at
        most once per attempt.  Never raises for a failing ``on_confirm``;
        callers that need the outcome must observe it through the
        callback's own side effects.
        """
        if not self.is_open:
            logger.debug("submit ignored for %s: form is closed", self.request_code)
            return
        if self.is_submitting:
            logger.debug("submit ignored for %s: already submitting", self.request_code)
            return
        try:
            reason = validate_reason(self.draft)
        except ReasonValidationError as exc:
            self.notifier.error(exc.message)
            return

        self.state = SubmissionState.SUBMITTING
        try:
            result = self.on_confirm(reason)
            if inspect.isawaitable(result):
                await result
            self.draft = ""
        except Exception:
            logger.exception("Error submitting rejection reason for request %s", self.request_code)
        finally:
            self.state = SubmissionState.IDLE

    def cancel(self) -> None:
        """Clear the draft and close, even while a submit is in flight.

        A closed form has nothing to cancel.
        """
        if not self.is_open:
            return
        self.draft = ""
        self.on_close()

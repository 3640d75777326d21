from __future__ import annotations


class ValidationError(Exception):
    """Raised when domain validation fails."""


class NotFoundError(LookupError):
    """Raised when a fab, board, table or lookup does not exist."""


class AccessDeniedError(PermissionError):
    """Raised when the caller's role may not open a board."""


class SessionTransitionError(ValidationError):
    """Raised when a work-session action is not allowed from the current status."""

    def __init__(self, status: str, action: str) -> None:
        super().__init__(f"Cannot {action} a session that is {status}")
        self.status = status
        self.action = action


WORK_PERCENTAGES = tuple(range(0, 101, 10))


def require_text(value: object, message: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(message)
    return text


def optional_float(value: object, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if number < 0:
        raise ValidationError(f"{field} must not be negative")
    return number


def validate_work_percentage(value: object) -> int:
    """Return the work percentage as one of 0, 10, ..., 100."""

    if value is None or value == "":
        raise ValidationError("Please select a work percentage before pausing")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("Please select a work percentage before pausing") from exc
    if number not in WORK_PERCENTAGES:
        raise ValidationError("work_percentage must be a multiple of 10 between 0 and 100")
    return number

# multiverse_lab/errors.py
from typing import Any, List, Optional


class LabError(Exception):
    """Base class for every failure the lab core reports to its caller."""
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(LabError):
    """Caller-supplied data could not be turned into the layout model."""
    status = 422

    def __init__(self, message: str, violations: Optional[List[Any]] = None):
        super().__init__(message)
        self.violations = list(violations or [])

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.violations:
            out["violations"] = [v.to_dict() if hasattr(v, "to_dict") else v for v in self.violations]
        return out


class NotFoundError(LabError, KeyError):
    """A zone (or other) reference did not resolve."""
    status = 404

    def __str__(self) -> str:
        return self.message


class InsufficientInputError(LabError):
    status = 400


class UnknownModelError(LabError):
    status = 400


class MalformedResponseError(LabError):
    """The model answered, but not with a usable layout. Only raised inside the adapter."""
    status = 502

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class AdapterExhaustedError(LabError):
    """Every attempt against the external model failed."""
    status = 502

    def __init__(self, message: str, last_response: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.last_response = last_response
        self.attempts = attempts

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["attempts"] = self.attempts
        out["lastResponse"] = self.last_response
        return out

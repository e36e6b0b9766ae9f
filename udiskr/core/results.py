from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class CallResult:
    """
    Outcome of a remote call. Failures are returned, not raised, so every
    caller has to take the failure branch explicitly.
    """

    ok: bool
    value: Any = None
    error_name: Optional[str] = None
    error_message: str = ""

    @classmethod
    def success(cls, value: Any = None) -> "CallResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error_name: Optional[str], error_message: str = "") -> "CallResult":
        return cls(ok=False, error_name=error_name, error_message=error_message)

    def __str__(self) -> str:
        if self.ok:
            return f"ok: {self.value!r}"
        if self.error_name:
            return f"{self.error_name}: {self.error_message}"
        return self.error_message or "unknown error"

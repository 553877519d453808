"""Uniform result envelope returned by every operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class Result:
    """Outcome of one executed function.

    Serialises as ``{success, data?, message, error?}``; absent optional
    keys are omitted rather than sent as null.
    """

    success: bool
    message: str
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> Result:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: str) -> Result:
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        out["message"] = self.message
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, payload: dict) -> Result:
        return cls(
            success=bool(payload.get("success")),
            message=payload.get("message", ""),
            data=payload.get("data"),
            error=payload.get("error"),
        )

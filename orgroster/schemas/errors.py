"""Error and result schemas returned by the membership manager."""
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ErrorResponse(BaseModel):
    """Standard error payload.

    Used for every failed membership operation.
    """

    error: str = Field(
        ...,
        description="Error type identifier",
        examples=["not_authorized", "not_found", "conflict", "expired", "critical"]
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Admins cannot assign owner or admin roles", "This invitation has expired"]
    )
    details: Optional[dict[str, Any]] = Field(
        None,
        description="Additional error context (field validation errors, ids, etc.)",
        examples=[{"email": "Invalid email format"}]
    )

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "error": "not_authorized",
                    "message": "Owners must transfer ownership before leaving the organization"
                },
                {
                    "error": "critical",
                    "message": "Failed to mark invitation as accepted. Please contact support.",
                    "details": {"invitation_id": "9b1d..."}
                }
            ]
        }


class ActionResult(BaseModel, Generic[DataT]):
    """Outcome of a public membership operation.

    Exactly one of `data` (on success) or `error` (on failure) is meaningful.
    """

    success: bool = Field(..., description="Whether the operation completed")
    data: Optional[DataT] = Field(None, description="Operation payload on success")
    error: Optional[ErrorResponse] = Field(None, description="Typed error on failure")

    @property
    def requires_support(self) -> bool:
        """True when state may be partial and the caller should escalate."""
        return self.error is not None and self.error.error == "critical"

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, message: str, details: dict[str, Any] | None = None) -> "ActionResult":
        return cls(success=False, error=ErrorResponse(error=error, message=message, details=details))

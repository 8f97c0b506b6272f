"""
Shared Pydantic v2 schemas reused across multiple modules.

``CamelModel`` gives every API model camelCase JSON keys (``invoiceNumber``,
``responsibilityId``) while Python code keeps snake_case attribute names.
Both spellings are accepted on input.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    """Generic message envelope for operations that do not return a resource.

    Attributes:
        message: Short human-readable result summary.
        detail: Optional extended information.
    """

    message: str = Field(..., description="Short summary of the operation result.")
    detail: str | None = Field(
        default=None,
        description="Extra information (error context, hint, etc.).",
    )


class ErrorResponse(BaseModel):
    """Body of every ledger error response.

    Extra keys depend on ``code``; ``BUDGET_EXCEEDED`` carries
    ``attempted``, ``currentSpent`` and ``budget``.
    """

    detail: str
    code: str

    model_config = ConfigDict(extra="allow")

"""Request bodies shared by several route modules."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ReviewPayload(BaseModel):
    """Approve/reject body. Whether ``reason`` is required is decided per transition."""

    notes: str | None = Field(default=None, max_length=2000)
    reason: str | None = Field(default=None, max_length=2000)

    def transition_values(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

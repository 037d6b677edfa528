"""Input/output models for the MCP administrative tools."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from secaudit.models.rules import SecurityRule


class RecordEventResult(BaseModel):
    event_id: str = ""
    status: Literal["accepted", "rejected"] = "accepted"
    error_code: str | None = None
    message: str | None = None


class RuleMutationResult(BaseModel):
    rule_id: str
    status: Literal["added", "removed", "not_found", "rejected"]
    error_code: str | None = None
    message: str | None = None


class RuleListResult(BaseModel):
    rules: list[SecurityRule] = Field(default_factory=list)
    total: int = 0

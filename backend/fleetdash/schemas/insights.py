from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

InsightModule = Literal["dashboard", "drivers", "fuel", "health"]
InsightSeverity = Literal["info", "warning", "critical", "positive"]


class Insight(BaseModel):
    title: str
    description: str
    severity: InsightSeverity = "info"


class InsightRequest(BaseModel):
    locale: str = Field(default="en", max_length=16)


class InsightResponse(BaseModel):
    module: InsightModule
    insights: list[Insight] = Field(default_factory=list)
    cached: bool = False
    generated_at: datetime


ChatRole = Literal["user", "assistant"]
ChatBlockType = Literal["text", "vehicleCard", "statCard", "action"]


class ChatMessageIn(BaseModel):
    role: ChatRole
    content: str = Field(max_length=8000)


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(min_length=1)
    locale: str = Field(default="en", max_length=16)


class ChatBlock(BaseModel):
    type: ChatBlockType
    content: str | None = None
    vehicles: list[dict[str, Any]] | None = None
    stats: list[dict[str, Any]] | None = None
    label: str | None = None
    href: str | None = None


class ChatResponse(BaseModel):
    blocks: list[ChatBlock] = Field(default_factory=list)
    generated_at: datetime

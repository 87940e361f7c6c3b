"""
Pydantic schemas for the fixed-shape responses of the API.

Entity payloads are schema-driven dicts and are returned as-is.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    message: str
    timestamp: str
    database: Literal["connected", "disconnected"]


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    fields: Optional[list[str]] = None

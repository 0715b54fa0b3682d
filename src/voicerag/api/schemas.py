"""Pydantic models for the VoiceRAG API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RagRequest(BaseModel):
    # Optional so a missing query maps to the 400 taxonomy rather than a 422.
    query: Optional[str] = Field(default=None, description="End-user question to answer")
    context: Optional[str] = Field(default=None, description="Free-text context, e.g. extracted document text")


class RagResponse(BaseModel):
    answer: str


class ExtractionResponse(BaseModel):
    text: str = Field(..., description="Plain text extracted from the uploaded document")


class TextToSpeechRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="Text to synthesise")


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None

"""Pydantic request models for API endpoints."""

from typing import Literal

from pydantic import BaseModel, field_validator


class NewGameBody(BaseModel):
    theme: str = ""


class MessageBody(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v


class TutorialActionBody(BaseModel):
    action: Literal["ask", "declare", "end"]

"""Message API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    id: str
    role: MessageRole
    text: str
    created_at: datetime


class CreateMessageRequest(BaseModel):
    text: str = Field(min_length=1)


class CreateMessageResponse(BaseModel):
    user_message: Message
    ai_message: Message

"""
Request and response models for the HTTP surface.
"""

from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, List
from datetime import datetime


class ReflectionRequest(BaseModel):
    text: str
    nickname: str = ""
    user_id: Optional[str] = None
    temporary_token: Optional[str] = None

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v

    @model_validator(mode='after')
    def exactly_one_attribution(self):
        if bool(self.user_id) == bool(self.temporary_token):
            raise ValueError('exactly one of user_id or temporary_token is required')
        return self


class MatchResponse(BaseModel):
    user_id: str
    nickname: Optional[str] = None
    content: str
    score: float
    raw_score: float


class ReflectionResponse(BaseModel):
    success: bool
    post_id: Optional[int] = None
    matches: List[MatchResponse]
    degraded: bool = False
    error: Optional[str] = None


class ReconcileRequest(BaseModel):
    temporary_token: str
    user_id: str

    @field_validator('temporary_token', 'user_id')
    @classmethod
    def must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('value cannot be empty')
        return v


class ReconcileResponse(BaseModel):
    success: bool
    user_id: str
    posts_reattached: int
    name_preserved: bool


class ProfileResponse(BaseModel):
    user_id: str
    nickname: str
    content: str
    has_embedding: bool
    updated_at: datetime


class MatchListResponse(BaseModel):
    user_id: str
    matches: List[MatchResponse]


class ConversationRequest(BaseModel):
    user_id: str
    partner_id: str


class ConversationResponse(BaseModel):
    conversation_id: int
    user_a_id: str
    user_b_id: str


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    post_count: int
    profile_count: int

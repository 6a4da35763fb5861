from typing import Literal, Optional, Union

from pydantic import BaseModel


class ChatReply(BaseModel):
    reply: str


class SearchFilters(BaseModel):
    keywords: Optional[str] = None
    page: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    limit: int = 12


class SearchIntent(BaseModel):
    intent: Literal["search"] = "search"
    filters: SearchFilters


class SmalltalkIntent(BaseModel):
    intent: Literal["smalltalk"] = "smalltalk"
    answer: str


IntentResult = Union[SearchIntent, SmalltalkIntent]


class ErrorResponse(BaseModel):
    error: str

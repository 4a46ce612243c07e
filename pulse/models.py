"""
Pydantic models shared across Morning Pulse.

Wire models accept the camelCase field names the feed and the ``/ask``
endpoint use, and serialise back to them with ``by_alias=True``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_text_is_empty(cls, value: Any, info: ValidationInfo) -> Any:
        # Feeds send null for blank text fields.
        if value is None and cls.model_fields[info.field_name].annotation is str:
            return ""
        return value


class NewsStory(_WireModel):
    """A single news item from the category feed.

    Missing text fields default to empty strings so scoring never has to
    special-case them.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = ""
    headline: str = ""
    detail: str = ""
    category: str = ""
    source: str = ""
    url: Optional[str] = None
    url_to_image: Optional[str] = Field(default=None, alias="urlToImage")
    date: Optional[str] = None
    #: Publish time in epoch milliseconds.
    timestamp: Optional[float] = None


class Opinion(_WireModel):
    """A guest opinion or editorial piece."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = ""
    headline: str = ""
    sub_headline: str = Field(default="", alias="subHeadline")
    body: str = ""
    author_name: str = Field(default="", alias="authorName")
    author_title: Optional[str] = Field(default=None, alias="authorTitle")
    category: Optional[str] = None
    status: str = "draft"
    is_published: Optional[bool] = Field(default=None, alias="isPublished")
    submitted_at: Optional[datetime] = Field(default=None, alias="submittedAt")
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")

    @property
    def published(self) -> bool:
        if self.is_published is not None:
            return self.is_published
        return self.status == "published"


class SourceRef(_WireModel):
    """A source returned alongside an answer; ``index`` matches ``[n]`` markers."""

    title: str
    url: Optional[str] = None
    index: Optional[int] = None


class ChatPart(_WireModel):
    text: str


class ChatTurn(_WireModel):
    """One conversation turn in the hosted-model history format."""

    role: Literal["user", "model"]
    parts: list[ChatPart]


class AskRequest(_WireModel):
    """Body of ``POST /ask``."""

    question: str
    news_data: dict[str, list[NewsStory]] = Field(alias="newsData")
    conversation_history: list[ChatTurn] = Field(
        default_factory=list, alias="conversationHistory"
    )
    opinions: list[Opinion] = Field(default_factory=list)
    previous_entities: list[str] = Field(default_factory=list, alias="previousEntities")
    stream: bool = False


class AskResult(_WireModel):
    """Final answer text plus the sources it may cite."""

    text: str
    sources: list[SourceRef] = Field(default_factory=list)


class Citation(BaseModel):
    """A resolved ``[n]`` marker."""

    index: int
    title: str
    url: Optional[str] = None


class Bookmark(BaseModel):
    """A saved article, newest first in listings."""

    id: str
    title: str
    url: Optional[str] = None
    category: str = ""
    saved_at: datetime

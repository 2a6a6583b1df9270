"""StateDocument — the shared UI state reconstructed from merged patches.

Field names are snake_case in Python and camelCase on the wire (``uiState``
patches, request bodies). Every top-level field has a default, so a document
always carries every key even before the first patch arrives.

Unknown top-level keys are rejected (``extra="forbid"``): a patch that names
one fails validation and is dropped whole by the merger.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Genre(str, enum.Enum):
    ACTION = "action"
    COMEDY = "comedy"
    DRAMA = "drama"
    HORROR = "horror"
    SCI_FI = "sci-fi"
    ROMANCE = "romance"
    THRILLER = "thriller"
    DOCUMENTARY = "documentary"
    ANIMATION = "animation"
    FANTASY = "fantasy"


class ContentType(str, enum.Enum):
    MOVIE = "movie"
    SERIES = "series"
    DOCUMENTARY = "documentary"


class NotificationKind(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ContentItem(_WireModel):
    id: str
    title: str
    description: str
    genre: Genre
    type: ContentType
    year: int
    rating: float = Field(ge=0, le=10)
    duration: str  # e.g. "2h 15m" or "45m"
    poster_url: str
    backdrop_url: str
    cast: list[str]
    director: Optional[str] = None
    trailer_url: Optional[str] = None
    match_percentage: Optional[float] = Field(default=None, ge=0, le=100)


class WatchProgress(_WireModel):
    content: ContentItem
    progress: float = Field(ge=0, le=100)  # percentage watched
    last_watched: str  # ISO date string
    episode: Optional[str] = None  # e.g. "S2E5"


class UserPreferences(_WireModel):
    favorite_genres: list[Genre]
    preferred_content_types: list[ContentType]
    maturity_rating: str = Field(pattern=r"^(G|PG|PG-13|R|NC-17)$")
    autoplay_enabled: bool
    notifications_enabled: bool


class UserProfile(_WireModel):
    id: str
    name: str
    avatar_url: str
    preferences: UserPreferences
    member_since: str
    watchlist_count: int


class NotificationRecord(_WireModel):
    id: str
    kind: NotificationKind = Field(alias="type")
    message: str
    created_at: str = Field(alias="timestamp")  # passed back to the producer verbatim


class LoadingStates(_WireModel):
    recommendations: bool = False
    trending: bool = False
    search: bool = False
    featured: bool = False


class StateDocument(_WireModel):
    """Root document rendered by the dashboard.

    Fields
    ------
    featured_content : hero section title, or ``None``.
    recommendations / recommendation_reason : personalised row and its subtitle.
    trending / trending_category : trending row and its heading.
    continue_watching : partially watched titles.
    search_results / search_query : active search, if any.
    user_profile : the signed-in profile, or ``None``.
    active_genre : current genre filter, or ``None``.
    notifications : agent-issued alerts, see ``NotificationLifecycleManager``.
    loading_states : per-section spinners.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    featured_content: Optional[ContentItem] = None
    recommendations: list[ContentItem] = Field(default_factory=list)
    recommendation_reason: Optional[str] = None
    trending: list[ContentItem] = Field(default_factory=list)
    trending_category: Optional[str] = None
    continue_watching: list[WatchProgress] = Field(default_factory=list)
    search_results: list[ContentItem] = Field(default_factory=list)
    search_query: Optional[str] = None
    user_profile: Optional[UserProfile] = None
    active_genre: Optional[Genre] = None
    notifications: list[NotificationRecord] = Field(default_factory=list)
    loading_states: LoadingStates = Field(default_factory=LoadingStates)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)


def wire_keys() -> frozenset[str]:
    """Top-level camelCase keys a patch may name."""
    return frozenset(field.alias or name for name, field in StateDocument.model_fields.items())

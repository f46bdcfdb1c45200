"""Input boundary models.

A ``ContentUnit`` is one Reddit post body or comment handed to the
pipeline by the content-retrieval collaborator (Reddit API or archive
reader). The pipeline never fetches content itself.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator


class SourceType(str, Enum):
    """Kind of community content a unit came from."""

    POST = "post"
    COMMENT = "comment"


class ContentUnit(BaseModel):
    """A unit of community content eligible for extraction.

    Attributes:
        text: The unit's own text (post title + body, or comment body).
        parent_context_text: Text of the immediate parent unit, if any.
        extract_from_post: Whether the post body itself may emit mentions.
        source_type: Post or comment.
        source_id: External id of the post or comment.
        upvotes: Score of the unit at collection time.
        subreddit: Subreddit the unit was collected from.
        created_at: Creation timestamp of the unit.
        parent_source_id: External id of the parent unit, if any.
        source_url: Permalink of the unit.
    """

    text: str = Field(description="Unit text")
    parent_context_text: str | None = Field(default=None, description="Parent unit text")
    extract_from_post: bool = Field(
        default=True, description="Whether a post body may generate mentions"
    )
    source_type: SourceType = Field(description="Post or comment")
    source_id: str = Field(min_length=1, description="External post/comment id")
    upvotes: int = Field(default=0, description="Score at collection time")
    subreddit: str = Field(default="unknown", description="Source subreddit")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp"
    )
    parent_source_id: str | None = Field(default=None, description="Parent post/comment id")
    source_url: str = Field(default="", description="Permalink")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        """Timestamps without a timezone are taken as UTC."""
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @computed_field
    @property
    def is_post_body(self) -> bool:
        """Whether this unit is a post body rather than a comment."""
        return self.source_type == SourceType.POST

    @property
    def source_key(self) -> tuple[str, str]:
        """Idempotency key ``(source_type, source_id)`` for this unit."""
        return (self.source_type.value, self.source_id)

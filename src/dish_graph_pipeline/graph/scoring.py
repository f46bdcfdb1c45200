"""Connection aggregates derived from mention evidence.

- Time-weighted mention score: ``upvotes * exp(-age_days / decay_days)``
- Top mentions: the best-scoring mentions of a connection
- Activity level: trending when enough top mentions are all recent,
  active when the last mention is recent, otherwise normal
- Quality score: log-scaled mention count and upvotes, weighted, 0-100
"""

from collections.abc import Sequence
from datetime import UTC, datetime
import math

from dish_graph_pipeline.config import ScoringConfig
from dish_graph_pipeline.models import ActivityLevel, Mention


def _age_days(moment: datetime, now: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return max(0.0, (now - moment).total_seconds() / 86400)


def mention_weight(mention: Mention, now: datetime, config: ScoringConfig) -> float:
    """Time-weighted score of one mention."""
    return mention.upvotes * math.exp(-_age_days(mention.created_at, now) / config.decay_days)


def select_top_mentions(
    mentions: Sequence[Mention],
    now: datetime,
    config: ScoringConfig,
) -> list[Mention]:
    """Best mentions by time-weighted score, newest first on ties."""
    ranked = sorted(
        mentions,
        key=lambda m: (mention_weight(m, now, config), m.created_at, m.mention_id),
        reverse=True,
    )
    return ranked[: config.top_mentions_limit]


def activity_level(
    last_mentioned_at: datetime | None,
    top_mentions: Sequence[Mention],
    now: datetime,
    config: ScoringConfig,
) -> ActivityLevel:
    """Recency-derived activity of a connection.

    Example:
        Three top mentions from the last week make a connection trending;
        a single mention from yesterday makes it active.
    """
    if len(top_mentions) >= config.trending_min_mentions and all(
        _age_days(m.created_at, now) <= config.trending_window_days for m in top_mentions
    ):
        return ActivityLevel.TRENDING
    if last_mentioned_at is not None and _age_days(last_mentioned_at, now) <= config.active_window_days:
        return ActivityLevel.ACTIVE
    return ActivityLevel.NORMAL


def connection_quality_score(mention_count: int, total_upvotes: int, config: ScoringConfig) -> float:
    """Connection strength on a 0-100 scale.

    Example:
        >>> connection_quality_score(0, 0, ScoringConfig())
        0.0
    """
    mentions_component = min(100.0, math.log1p(max(0, mention_count)) * config.mention_scale)
    upvotes_component = min(100.0, math.log1p(max(0, total_upvotes)) * config.upvote_scale)
    score = (
        mentions_component * config.mention_count_weight
        + upvotes_component * config.upvote_weight
    )
    return round(score, 4)

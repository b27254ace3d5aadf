"""Engagement scoring and virality momentum for tweet markets.

Scores are a weighted sum of engagement counters; momentum compares two
snapshots. None of this feeds the pricing engine directly, callers may use
the multiplier to bias their own market-making or order sizing.
"""

from typing import Sequence

from .state import EngagementMetrics, Trend, ViralityScore

# Retweets count most and likes least
LIKE_WEIGHT = 1
RETWEET_WEIGHT = 3
REPLY_WEIGHT = 2

TREND_THRESHOLD_PCT = 5.0

# (engagement per hour strictly above, probability); checked in order
VIRALITY_RATE_BUCKETS = (
    (1000.0, 0.9),
    (500.0, 0.7),
    (100.0, 0.5),
)
BASE_VIRALITY_PROBABILITY = 0.2


def engagement_score(metrics: EngagementMetrics) -> float:
    """Weighted engagement: likes x1, retweets x3, replies x2."""
    return float(
        metrics.likes * LIKE_WEIGHT
        + metrics.retweets * RETWEET_WEIGHT
        + metrics.replies * REPLY_WEIGHT
    )


def momentum_pct(current: EngagementMetrics, previous: EngagementMetrics) -> float:
    """Percentage growth of the engagement score; 0 when the previous score is 0."""
    previous_score = engagement_score(previous)
    if previous_score == 0:
        return 0.0
    return (engagement_score(current) - previous_score) / previous_score * 100.0


def classify_trend(momentum: float, threshold_pct: float = TREND_THRESHOLD_PCT) -> Trend:
    """Rising above +threshold, falling below -threshold, otherwise stable."""
    if momentum > threshold_pct:
        return Trend.RISING
    if momentum < -threshold_pct:
        return Trend.FALLING
    return Trend.STABLE


def virality_multiplier(momentum: float) -> float:
    """1 plus positive momentum as a fraction; negative momentum gives exactly 1."""
    return 1.0 + max(0.0, momentum / 100.0)


def analyze_virality(
    current: EngagementMetrics,
    history: Sequence[EngagementMetrics] = (),
    threshold_pct: float = TREND_THRESHOLD_PCT,
) -> ViralityScore:
    """Score ``current`` and measure momentum against the latest history entry."""
    momentum = momentum_pct(current, history[-1]) if history else 0.0
    return ViralityScore(
        score=engagement_score(current),
        momentum_pct=momentum,
        trend=classify_trend(momentum, threshold_pct),
        multiplier=virality_multiplier(momentum),
    )


def predict_virality_probability(metrics: EngagementMetrics, age_in_hours: float) -> float:
    """Coarse chance that a tweet goes viral, from its engagement rate per hour.

    Ages under one hour count as one hour.
    """
    rate = engagement_score(metrics) / max(1.0, age_in_hours)
    for threshold, probability in VIRALITY_RATE_BUCKETS:
        if rate > threshold:
            return probability
    return BASE_VIRALITY_PROBABILITY

"""Demo data for trending tweet markets.

Kept apart from the engine: nothing in pricing, portfolio or virality
depends on this module. Every generator takes a ``numpy.random.RandomState``
so runs are reproducible.
"""

from dataclasses import replace
from datetime import timedelta
from typing import List, Optional

import numpy as np

from .config import EngineConfig
from .market import initialize_market
from .state import EngagementMetrics, PricePoint, TweetMarket, utc_now

MOCK_TWEETS = [
    {
        "text": "Just shipped the biggest update to our platform. This changes everything.",
        "author": "sama",
        "name": "Sam Altman",
        "likes": 45000,
        "retweets": 8500,
        "replies": 2300,
    },
    {
        "text": "Breaking: New AI model just dropped. It's actually insane what it can do.",
        "author": "elonmusk",
        "name": "Elon Musk",
        "likes": 230000,
        "retweets": 52000,
        "replies": 12000,
    },
    {
        "text": "Market prediction: We're going to see major moves in the next 24h. Screenshot this.",
        "author": "APompliano",
        "name": "Anthony Pompliano",
        "likes": 12000,
        "retweets": 3200,
        "replies": 890,
    },
    {
        "text": "Unpopular opinion: Most people are sleeping on this opportunity right now.",
        "author": "naval",
        "name": "Naval",
        "likes": 34000,
        "retweets": 7800,
        "replies": 1900,
    },
    {
        "text": "This is the most bullish thing I've seen all year. Let that sink in.",
        "author": "VitalikButerin",
        "name": "Vitalik Buterin",
        "likes": 67000,
        "retweets": 14500,
        "replies": 3400,
    },
]


def _rng(rng: Optional[np.random.RandomState]) -> np.random.RandomState:
    return rng if rng is not None else np.random.RandomState(42)


def generate_trending_markets(
    rng: Optional[np.random.RandomState] = None,
    config: Optional[EngineConfig] = None,
    count: int = len(MOCK_TWEETS),
) -> List[TweetMarket]:
    """Build markets for the built-in trending tweets with random 24h stats."""
    rng = _rng(rng)
    markets = []
    for index, tweet in enumerate(MOCK_TWEETS[:count]):
        metrics = EngagementMetrics(
            likes=tweet["likes"],
            retweets=tweet["retweets"],
            replies=tweet["replies"],
        )
        market = initialize_market(
            f"tweet-{index}",
            f"https://twitter.com/{tweet['author']}/status/123456789{index}",
            tweet["text"],
            tweet["author"],
            tweet["name"],
            metrics,
            config,
        )
        markets.append(replace(
            market,
            price_change_24h=float((rng.random_sample() - 0.5) * 60),  # -30% to +30%
            holders=int(rng.randint(100, 1100)),
        ))
    return markets


def generate_price_history(
    initial_price: float,
    volatility: float = 0.05,
    points: int = 100,
    rng: Optional[np.random.RandomState] = None,
) -> List[PricePoint]:
    """Random walk over the last 24 hours with a slight upward bias."""
    rng = _rng(rng)
    now = utc_now()
    interval = timedelta(days=1) / points

    changes = (rng.random_sample(points) - 0.48) * volatility
    prices = initial_price * np.cumprod(1.0 + changes)
    volumes = rng.random_sample(points) * 1000 + 100

    return [
        PricePoint(
            timestamp=now - (points - i) * interval,
            price=float(max(0.0001, prices[i])),  # Prevent negative prices
            volume=float(volumes[i]),
        )
        for i in range(points)
    ]


def simulate_metrics_growth(
    current: EngagementMetrics,
    volatility: float = 0.1,
    rng: Optional[np.random.RandomState] = None,
) -> EngagementMetrics:
    """Grow each counter by a random amount; retweets grow fastest.

    ``volatility`` adds a shared shock so some steps grow and some stall.
    """
    rng = _rng(rng)
    shock = max(0.0, 1.0 + (rng.random_sample() - 0.5) * 2 * volatility)
    return EngagementMetrics(
        likes=int(np.floor(current.likes * (1 + rng.random_sample() * 0.05 * shock))),
        retweets=int(np.floor(current.retweets * (1 + rng.random_sample() * 0.08 * shock))),
        replies=int(np.floor(current.replies * (1 + rng.random_sample() * 0.03 * shock))),
        timestamp=utc_now(),
    )

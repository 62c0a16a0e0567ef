import random
from typing import Optional

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


def random_multiplier(rng: Optional[random.Random] = None) -> float:
    """Uniform draw from [MULTIPLIER_MIN, MULTIPLIER_MAX)."""
    source = rng or random
    return MULTIPLIER_MIN + source.random() * (MULTIPLIER_MAX - MULTIPLIER_MIN)


def estimate_gdp(population: int, exchange_rate: Optional[float], rng: Optional[random.Random] = None) -> Optional[float]:
    """Synthetic GDP estimate: population * random multiplier / exchange rate.

    Returns None when there is no usable exchange rate.
    """
    if not exchange_rate:
        return None
    return (population * random_multiplier(rng)) / exchange_rate

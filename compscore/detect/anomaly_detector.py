"""Z-score price outlier detection across a comp population.

A comp's price is judged against every valid price in the population it was
found with. Fewer than three prices is too little data to call anything an
outlier, which is reported as an undecided check rather than a pass.
"""

import statistics
from dataclasses import dataclass
from typing import List, Sequence

from compscore.config import DEFAULT_VALIDATION_CONFIG, ValidationConfig
from compscore.models import CandidateRecord, PriceOutlierCheck


MIN_PRICES_FOR_OUTLIER = 3


@dataclass(frozen=True)
class PriceStatistics:
    """Population statistics for a set of comp prices."""

    count: int
    mean: float
    std_dev: float

    @property
    def is_decidable(self) -> bool:
        return self.count >= MIN_PRICES_FOR_OUTLIER

    def z_score(self, price: float) -> float:
        if self.std_dev == 0:
            return 0.0
        return abs(price - self.mean) / self.std_dev


def valid_prices(comps: Sequence[CandidateRecord]) -> List[float]:
    """Finite, positive prices from a comp list."""
    return [p for p in (c.valid_price for c in comps) if p is not None]


def price_statistics(prices: Sequence[float]) -> PriceStatistics:
    """
    Population mean and standard deviation.

    Args:
        prices: Valid prices

    Returns:
        PriceStatistics (zeros for an empty list)
    """
    if not prices:
        return PriceStatistics(count=0, mean=0.0, std_dev=0.0)
    return PriceStatistics(
        count=len(prices),
        mean=statistics.fmean(prices),
        std_dev=statistics.pstdev(prices),
    )


def validate_price_outlier(comp: CandidateRecord,
                           population: Sequence[CandidateRecord],
                           config: ValidationConfig = DEFAULT_VALIDATION_CONFIG) -> PriceOutlierCheck:
    """
    Judge one comp's price against the population.

    Args:
        comp: Comp under validation
        population: Every comp in the set (including this one)
        config: Thresholds

    Returns:
        PriceOutlierCheck; z_score is None when undecidable
    """
    price = comp.valid_price
    if price is None:
        return PriceOutlierCheck(is_outlier=False, z_score=None)

    stats = price_statistics(valid_prices(population))
    return _check(price, stats, config)


def _check(price: float, stats: PriceStatistics, config: ValidationConfig) -> PriceOutlierCheck:
    if not stats.is_decidable:
        return PriceOutlierCheck(is_outlier=False, z_score=None)

    z_score = stats.z_score(price)
    return PriceOutlierCheck(
        is_outlier=z_score > config.outlier_z_score_threshold,
        z_score=z_score,
    )


class PriceOutlierDetector:
    """
    Outlier detector bound to one comp population.

    Statistics are computed once from the population and every comp is
    judged against the same numbers.
    """

    def __init__(self, population: Sequence[CandidateRecord],
                 config: ValidationConfig = DEFAULT_VALIDATION_CONFIG):
        self.config = config
        self.stats = price_statistics(valid_prices(population))

    def detect(self, comp: CandidateRecord) -> PriceOutlierCheck:
        price = comp.valid_price
        if price is None:
            return PriceOutlierCheck(is_outlier=False, z_score=None)
        return _check(price, self.stats, self.config)

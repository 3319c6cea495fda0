"""Utilities for the derived statistics of finished accumulators.

Every ratio in PyRaQC goes through :func:`safe_ratio` so that an empty
denominator yields None (the "not computed" sentinel) instead of raising
or producing inf/nan.

Key features:
- safe_ratio
- CoverageProfile: median, CV and 5'/3' bias of a normalized coverage curve
- Median and mean of integer count collections
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

import numpy as np
import numpy.typing as npt
from scipy.stats import variation

logger = logging.getLogger(__name__)

Number = Union[int, float, np.integer, np.floating]
F = TypeVar('F', bound=Callable[..., Any])


def npcalc_with_logging_warn(func: F) -> F:
    """Decorator for handling numpy floating point errors gracefully.

    Wraps numerical functions so that a division by zero inside numpy is
    logged at DEBUG level and the calculation is retried with the errors
    silenced.
    """
    @wraps(func)
    def _inner(*args: Any, **kwargs: Any) -> Any:
        try:
            with np.errstate(divide="raise", invalid="raise"):
                return func(*args, **kwargs)
        except (FloatingPointError, ZeroDivisionError) as e:
            logger.debug("catch numpy warning: " + repr(e))
            logger.debug("continue anyway.")
            with np.errstate(divide="ignore", invalid="ignore"):
                return func(*args, **kwargs)
    return _inner  # type: ignore


def safe_ratio(numerator: Optional[Number], denominator: Optional[Number]) -> Optional[float]:
    """Return numerator / denominator, or None if either is missing or the
    denominator is zero."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return float(numerator) / float(denominator)


def median_of(values: Iterable[Number]) -> Optional[float]:
    arr = np.fromiter(values, dtype=np.float64)
    if not arr.size:
        return None
    return float(np.median(arr))


def mean_of(values: Iterable[Number]) -> Optional[float]:
    arr = np.fromiter(values, dtype=np.float64)
    if not arr.size:
        return None
    return float(arr.mean())


@dataclass(frozen=True)
class CoverageProfile:
    """Summary of a coverage-by-normalized-position curve.

    Attributes:
        median_coverage: Median of the bin values
        cv_coverage: Coefficient of variation of the bin values
        five_prime_bias: Mean of the first bins over the mean of all bins
        three_prime_bias: Mean of the last bins over the mean of all bins
        five_to_three_prime_bias: five_prime_bias / three_prime_bias
    """
    median_coverage: Optional[float] = None
    cv_coverage: Optional[float] = None
    five_prime_bias: Optional[float] = None
    three_prime_bias: Optional[float] = None
    five_to_three_prime_bias: Optional[float] = None

    @classmethod
    @npcalc_with_logging_warn
    def from_bins(cls, bins: npt.NDArray[np.int64], bias_bins: int) -> "CoverageProfile":
        """Derive the profile of a coverage curve.

        Args:
            bins: Coverage per normalized bin, 5' first
            bias_bins: Number of terminal bins used for bias

        Returns:
            CoverageProfile; every value is None for an all-zero curve
        """
        if not bins.size or not bins.any():
            return cls()

        values = bins.astype(np.float64)
        mean = values.mean()
        five = safe_ratio(values[:bias_bins].mean(), mean)
        three = safe_ratio(values[-bias_bins:].mean(), mean)
        return cls(
            median_coverage=float(np.median(values)),
            cv_coverage=float(variation(values)),
            five_prime_bias=five,
            three_prime_bias=three,
            five_to_three_prime_bias=safe_ratio(five, three)
        )

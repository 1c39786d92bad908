import numpy as np

from row_detector.config import DetectionConfig, SeriesStatistics


def mean(values) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def variance(values) -> float:
    """Sample variance (ddof=1); 0 for fewer than 2 values."""
    if len(values) < 2:
        return 0.0
    return float(np.var(values, ddof=1))


def standard_deviation(values) -> float:
    return float(np.sqrt(variance(values)))


def compute_series_statistics(values) -> SeriesStatistics:
    """
    Summarise a distance series.

    Uses the sample std (ddof=1): spacings and burdens measured on one pattern
    are a sample of the drilling layout, not the full population.

    Args:
        values: 1D sequence of distances.

    Returns:
        SeriesStatistics; all zeros for an empty series.
    """
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return SeriesStatistics(mean=0.0, std=0.0, cv=0.0, min=0.0, max=0.0, count=0)

    avg = mean(values)
    std = standard_deviation(values)
    return SeriesStatistics(
        mean=avg,
        std=std,
        cv=std / avg if avg > 0 else 0.0,
        min=float(np.min(values)),
        max=float(np.max(values)),
        count=len(values),
    )


def estimate_spacing(xy: np.ndarray, config: DetectionConfig | None = None) -> float:
    """
    Estimate typical hole spacing as the median nearest-neighbour distance.

    At most ``spacing_sample_size`` holes, evenly spread over the input
    order, are used as query points (their neighbours are searched over the
    whole set). Returns the default spacing when fewer than two holes are
    given.
    """
    config = config or DetectionConfig()
    n = len(xy)
    if n < 2:
        return config.default_spacing

    count = min(config.spacing_sample_size, n)
    sample = np.unique(np.linspace(0, n - 1, count).round().astype(int))
    nearest = []
    for i in sample:
        dists = np.hypot(*(xy - xy[i]).T)
        dists[i] = np.inf
        nearest.append(float(np.min(dists)))

    nearest.sort()
    return nearest[len(nearest) // 2]

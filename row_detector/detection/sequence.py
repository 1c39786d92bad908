"""Row detection from human-assigned hole IDs ("A1", "B12", or plain numbers)."""
import logging
import re

from row_detector.analysis.geometry import coordinates
from row_detector.config import DetectionConfig, Hole
from row_detector.detection.assignment import attach_orphans
from row_detector.detection.line_fitting import detect_rows_using_line_fitting

logger = logging.getLogger(__name__)

NUMERIC_ID = re.compile(r"^[0-9]+$")
ALPHANUMERIC_ID = re.compile(r"^([A-Za-z]+)([0-9]+)$")


def classify_hole_ids(holes: list[Hole]) -> dict[str, list[int]]:
    """Split hole indices into "numeric", "alphanumeric" and "other" ID styles."""
    groups = {"numeric": [], "alphanumeric": [], "other": []}
    for i, hole in enumerate(holes):
        if NUMERIC_ID.match(hole.id):
            groups["numeric"].append(i)
        elif ALPHANUMERIC_ID.match(hole.id):
            groups["alphanumeric"].append(i)
        else:
            groups["other"].append(i)
    return groups


def try_sequence_detection(holes: list[Hole],
                           config: DetectionConfig | None = None) -> list[list[int]] | None:
    """
    Detect rows from the dominant hole ID style.

    Alphanumeric IDs ("A1".."A9", "B1"..) give one row per letter prefix,
    prefixes sorted lexicographically (case-insensitive) and holes ordered by
    their number. Numeric IDs only give the walking order, so the holes are
    sorted by number and grouped by line fitting. Holes whose ID does not
    follow the dominant style join the nearest row.

    Returns:
        Rows of hole indices, or None for fewer than 3 holes or when no
        style covers more than ``id_dominance_ratio`` of the holes.
    """
    config = config or DetectionConfig()
    n = len(holes)
    if n < 3:
        return None

    groups = classify_hole_ids(holes)
    alpha_ratio = len(groups["alphanumeric"]) / n
    numeric_ratio = len(groups["numeric"]) / n

    if alpha_ratio > config.id_dominance_ratio:
        logger.debug("Sequence detection: alphanumeric IDs (%.0f%%)", alpha_ratio * 100)
        rows = _rows_from_prefixes(holes, groups["alphanumeric"])
        matched = groups["alphanumeric"]
    elif numeric_ratio > config.id_dominance_ratio:
        logger.debug("Sequence detection: numeric IDs (%.0f%%)", numeric_ratio * 100)
        ordered = sorted(groups["numeric"], key=lambda i: int(holes[i].id))
        local_rows = detect_rows_using_line_fitting([holes[i] for i in ordered], config)
        if not local_rows:
            return None
        rows = [[ordered[i] for i in row] for row in local_rows]
        matched = ordered
    else:
        logger.debug(
            "Sequence detection: no dominant ID style (numeric %.0f%%, alphanumeric %.0f%%)",
            numeric_ratio * 100, alpha_ratio * 100,
        )
        return None

    matched_set = set(matched)
    leftovers = [i for i in range(n) if i not in matched_set]
    if leftovers:
        attach_orphans(coordinates(holes), rows, leftovers)
    return rows


def _rows_from_prefixes(holes: list[Hole], indices: list[int]) -> list[list[int]]:
    by_prefix: dict[str, list[tuple[int, int]]] = {}
    for i in indices:
        prefix, number = ALPHANUMERIC_ID.match(holes[i].id).groups()
        by_prefix.setdefault(prefix.upper(), []).append((int(number), i))

    rows = []
    for prefix in sorted(by_prefix):
        members = sorted(by_prefix[prefix], key=lambda item: item[0])
        rows.append([i for _, i in members])
    return rows

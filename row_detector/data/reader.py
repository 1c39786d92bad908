import json
import logging
import math
from pathlib import Path

from row_detector.config import Hole

logger = logging.getLogger(__name__)


def load_holes(path: Path) -> list[Hole]:
    """
    Load holes from a JSON file.

    The file holds either an array of hole records or an object with a
    "holes" array. Each record needs "id", "x" and "y"; "entity_name",
    "row_id" and "pos_id" are optional.

    Args:
        path: Path to the input .json file.

    Returns:
        Holes in file order.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: If the file is not valid JSON or a record is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Hole file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc

    if isinstance(data, dict):
        if "holes" not in data:
            raise ValueError(f"{path} has no 'holes' array")
        data = data["holes"]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain an array of holes")

    holes = holes_from_records(data)
    logger.info("Loaded %d holes from %s", len(holes), path)
    return holes


def holes_from_records(records: list[dict]) -> list[Hole]:
    """
    Build holes from plain dict records.

    Raises:
        ValueError: On the first record with a missing ID, a missing or
            non-finite coordinate, or a non-integer row_id / pos_id.
    """
    holes = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValueError(f"Record {index} is not an object")

        hole_id = record.get("id")
        if hole_id is None or str(hole_id) == "":
            raise ValueError(f"Record {index} has no id")
        hole_id = str(hole_id)

        holes.append(Hole(
            id=hole_id,
            x=_coordinate(record, "x", hole_id),
            y=_coordinate(record, "y", hole_id),
            entity_name=record.get("entity_name"),
            row_id=_optional_int(record, "row_id", hole_id),
            pos_id=_optional_int(record, "pos_id", hole_id),
        ))
    return holes


def _coordinate(record: dict, key: str, hole_id: str) -> float:
    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Hole {hole_id}: '{key}' must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Hole {hole_id}: '{key}' is not finite")
    return float(value)


def _optional_int(record: dict, key: str, hole_id: str) -> int | None:
    value = record.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Hole {hole_id}: '{key}' must be an integer, got {value!r}")
    return value

import json
import logging
from dataclasses import asdict
from pathlib import Path

from row_detector.config import Hole

logger = logging.getLogger(__name__)


def write_holes(path: Path, holes: list[Hole]) -> Path:
    """
    Write holes, with their row_id / pos_id, as a JSON array.

    Records keep the input order and the field names accepted by
    load_holes, so the output can be read back and re-validated.

    Returns:
        Path to the written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    records = [asdict(h) for h in holes]
    path.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Wrote %d holes to %s", len(holes), path)
    return path

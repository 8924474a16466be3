# services/result_writer.py

"""
Result encoder - writes category totals as a two-column CSV artifact
"""

import csv
import os
import logging
from pathlib import Path
from typing import Dict, Union

from csv_aggregator.core.exceptions import WriteError

logger = logging.getLogger(__name__)

RESULT_HEADER = ["Department Name", "Total Number of Sales"]


def result_filename(job_id: str) -> str:
    return f"result_{job_id}.csv"


def write_result_csv(path: Union[str, Path], totals: Dict[str, int]) -> Path:
    """Write ``totals`` to ``path`` sorted by category name.

    The file is staged next to its destination and renamed into place, so a
    reader never sees a half-written artifact.
    """
    path = Path(path)
    tmp_path = path.with_name(f".{path.name}.tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(RESULT_HEADER)
            for category in sorted(totals):
                writer.writerow([category, str(totals[category])])
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise WriteError(f"Failed to write result: {e}") from e

    logger.debug(f"Wrote {len(totals)} category totals to {path}")
    return path

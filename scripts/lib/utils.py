"""
Utility functions for the CRM metrics engine.
Atomic file writes, JSON loading and directory helpers.

Usage:
    from scripts.lib.utils import atomic_write_json, load_json_file, find_latest_export
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from scripts.lib.errors import DataFetchError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

EXPORT_DATE_RE = re.compile(r"_(\d{4}-\d{2}-\d{2})\.json$")


def atomic_write_json(data: Dict, file_path: str | Path, indent: int = 2) -> bool:
    """
    Write JSON data to file atomically using temp file + rename.
    Prevents data corruption if the program crashes during write.

    Args:
        data: Dictionary to serialize as JSON.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if successful, False otherwise.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        ensure_directory(file_path.parent)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)
        return False


def load_json_file(file_path: str | Path) -> Any:
    """Load a JSON file, raising DataFetchError when it is missing or invalid."""
    file_path = Path(file_path)
    if not file_path.exists():
        raise DataFetchError(f"File not found: {file_path}", source=str(file_path))

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DataFetchError(f"Could not read {file_path}: {e}", source=str(file_path)) from e


def find_latest_export(directory: str | Path, prefix: str) -> Optional[Path]:
    """Find the most recent date-stamped export in a directory.

    Pattern: {prefix}_YYYY-MM-DD.json. Falls back to {prefix}.json.
    """
    directory = Path(directory)
    dated = []
    for fp in directory.glob(f"{prefix}_*.json"):
        m = EXPORT_DATE_RE.search(fp.name)
        if m:
            dated.append((m.group(1), fp))

    if dated:
        dated.sort(key=lambda x: x[0], reverse=True)
        return dated[0][1]

    undated = directory / f"{prefix}.json"
    if undated.exists():
        return undated

    logger.warning("No export found in %s with prefix '%s'", directory, prefix)
    return None


def ensure_directory(path: str | Path) -> Path:
    """Ensure directory exists, create if needed."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path

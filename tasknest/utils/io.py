"""File I/O utilities for tasknest."""
import json
import os
from typing import Any

from loguru import logger

from tasknest.exceptions import TaskNestError


class IOError(TaskNestError):
    """Raised when file I/O operations fail."""
    pass


def build_path(*args: str, make_dir: bool = True) -> str:
    """
    Join path components, expand ``~`` and optionally create parent directories.

    :param args: Path components to join
    :param make_dir: If True, create parent directories (default True)
    :return: The joined path
    :raises IOError: If directory creation fails
    """
    path = os.path.expanduser(os.path.join(*args))
    if make_dir:
        parent_dir = os.path.dirname(path)
        if parent_dir:
            try:
                os.makedirs(parent_dir, exist_ok=True)
            except PermissionError as e:
                raise IOError(f"Permission denied creating directory '{parent_dir}': {e}") from e
            except OSError as e:
                raise IOError(f"Failed to create directory '{parent_dir}': {e}") from e
    return path


def write_json(data: Any, path: str) -> None:
    """
    Write JSON-serializable data to a file, replacing it atomically.

    :param data: Data to serialize
    :param path: File path to write to
    :raises IOError: If file write fails
    """
    tmp_path = f'{path}.tmp'
    try:
        with open(tmp_path, 'w') as out:
            json.dump(data, out, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Wrote JSON data to {path}")
    except PermissionError as e:
        raise IOError(f"Permission denied writing to '{path}': {e}") from e
    except OSError as e:
        raise IOError(f"Failed to write to '{path}': {e}") from e


def read_json(path: str) -> Any:
    """
    Read JSON data from a file.

    :param path: File path to read from
    :return: Parsed JSON data
    :raises IOError: If file read fails
    :raises ValueError: If JSON is invalid
    """
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise IOError(f"File not found: '{path}'") from e
    except PermissionError as e:
        raise IOError(f"Permission denied reading '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in '{path}': {e}") from e
    except OSError as e:
        raise IOError(f"Failed to read '{path}': {e}") from e

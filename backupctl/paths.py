"""Directory path helpers."""

import os

_SEPARATORS = tuple(sep for sep in (os.sep, os.altsep) if sep)


def normalize(path: str) -> str:
    """Ensure a directory path ends with a path separator."""
    if path.endswith(_SEPARATORS):
        return path
    return path + os.sep


def directory_exists(path: str) -> bool:
    return os.path.isdir(path)

"""
PURPOSE: Manage version information for tradehook.

This module reads version data from version.json and exposes it through
a get_version() function. Version data is cached after the first read.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

_version_cache: Optional[Dict[str, Any]] = None


def get_version() -> Dict[str, Any]:
    """
    PURPOSE: Retrieve version information for tradehook.

    Reads version.json shipped alongside the package and caches the result
    in a module-level variable.

    Returns:
        Dict[str, Any]: Version information including version string,
            codename and updated_at timestamp.

    Raises:
        FileNotFoundError: If version.json is missing from the package.
        json.JSONDecodeError: If version.json is invalid JSON.
    """
    global _version_cache

    if _version_cache is not None:
        return _version_cache

    version_file: Path = Path(__file__).parent / "version.json"

    with open(version_file, "r") as f:
        _version_cache = json.load(f)

    return _version_cache

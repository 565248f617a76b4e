"""
Lookup Settings
===============

Loads lookup definitions and runtime settings from a JSON file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import LookupConfigError
from .namespace import SQLLookupNamespace

logger = logging.getLogger(__name__)


def get_default_settings_path() -> str:
    """Get default settings path."""
    return str(Path(__file__).parent / "configs" / "lookup_settings.json")


def load_settings(settings_path: Optional[str] = None) -> Dict:
    """
    Load settings from JSON file.

    Args:
        settings_path: Path to the settings file, defaults to the bundled
            ``configs/lookup_settings.json``

    Returns:
        Settings dictionary with ``settings`` and ``lookups`` keys
    """
    settings_path = settings_path or get_default_settings_path()
    if not os.path.exists(settings_path):
        raise LookupConfigError(f"Settings file not found: {settings_path}")

    with open(settings_path, 'r') as f:
        try:
            settings = json.load(f)
        except json.JSONDecodeError as e:
            raise LookupConfigError(f"Invalid JSON in {settings_path}: {e}") from e

    if not isinstance(settings.get("lookups", []), list):
        raise LookupConfigError(f"'lookups' must be a list in {settings_path}")

    logger.debug(f"Loaded settings from {settings_path}")
    return settings


def load_namespaces(settings: Dict) -> List[Tuple[str, SQLLookupNamespace]]:
    """
    Build the lookup definitions of a settings dictionary.

    Returns:
        List of (lookup name, namespace) in file order
    """
    namespaces = []
    seen = set()
    for index, lookup in enumerate(settings.get("lookups", [])):
        name = lookup.get("name")
        if not name:
            raise LookupConfigError(f"Lookup #{index} has no 'name'")
        if name in seen:
            raise LookupConfigError(f"Duplicate lookup name: {name}")
        seen.add(name)
        namespaces.append((name, SQLLookupNamespace.from_dict(lookup)))
    return namespaces

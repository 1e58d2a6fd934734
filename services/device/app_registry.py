"""Lookup between human app names and Android package identifiers."""

import json
import logging
import os
from typing import Dict, List, Optional

LOGGER = logging.getLogger(__name__)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
PACKAGES_PATH = os.path.join(BASE_DIR, "data", "app_packages.json")


def load_app_packages(packages_path: str = PACKAGES_PATH) -> Dict[str, str]:
    """Load the app-name to package mapping JSON file from disk.

    Args:
        packages_path: Filesystem path to the mapping JSON.

    Returns:
        Mapping of display names to package identifiers.
    """
    with open(packages_path, "r", encoding="utf-8") as packages_file:
        return json.load(packages_file)


class AppRegistry:
    """Resolve app names for `launch` and package ids for screen info."""

    def __init__(self, packages: Optional[Dict[str, str]] = None) -> None:
        self.packages = dict(packages) if packages is not None else load_app_packages()
        self._folded = {name.casefold(): package for name, package in self.packages.items()}
        self._names: Dict[str, str] = {}
        for name, package in self.packages.items():
            self._names.setdefault(package, name)

    def resolve(self, app_name: str) -> Optional[str]:
        """Return the package for `app_name`, exact match first, then case-insensitive."""
        package = self.packages.get(app_name)
        if package is not None:
            return package
        package = self._folded.get(app_name.strip().casefold())
        if package is None:
            LOGGER.warning("App not found in registry: %s", app_name)
        return package

    def app_name_for(self, package_name: str) -> Optional[str]:
        """Return the first registered display name for a package."""
        return self._names.get(package_name)

    def list_apps(self) -> List[str]:
        return sorted(self.packages)

# SPDX-License-Identifier: MIT
"""Plesk domain cache - local cache and background sync for Plesk domains."""

from importlib.metadata import PackageNotFoundError, version


__all__: list[str] = ["__version__"]

# Get version from installed package metadata
__version__: str
try:
    __version__ = version("plesk-cache")
except PackageNotFoundError:
    # Package is not installed, use development fallback
    __version__ = "development"

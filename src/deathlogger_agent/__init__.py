"""DeathLogger Agent - uploads WoW deaths and their screenshots to a collection server."""

__version__ = "1.0.0"

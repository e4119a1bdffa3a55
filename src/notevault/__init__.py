"""notevault: resolve, search and rename notes in a markdown vault."""

__version__ = "0.1.0"

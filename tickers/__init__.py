"""Discord ticker bots that render live crypto prices as bot nicknames."""

__version__ = "1.0.0"

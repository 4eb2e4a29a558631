"""Clobber: a Matrix moderation bot driven by rule lists kept in room state."""

__version__ = "0.1.0"

"""Keyword intelligence: cached keyword volume, SERP analysis and clustering."""

__version__ = "0.1.0"

"""Repositories layer - Data access for ORM models."""

from keyword_intel.repositories.research import ResearchRepository

__all__ = ["ResearchRepository"]

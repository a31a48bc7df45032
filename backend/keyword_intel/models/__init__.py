"""Models layer - SQLAlchemy ORM models.

All models inherit from the Base class defined in core.database.
"""

from keyword_intel.core.database import Base
from keyword_intel.models.research import ClusteringStatus, ResearchRecord

__all__ = [
    "Base",
    "ClusteringStatus",
    "ResearchRecord",
]

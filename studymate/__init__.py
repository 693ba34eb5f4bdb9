"""StudyMate client-side connection resilience and offline fallback."""

__version__ = "0.1.0"

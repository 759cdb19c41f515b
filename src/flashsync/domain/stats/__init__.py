# Domain Stats Package
from .models import LearningStats, SessionEstimate

__all__ = ["LearningStats", "SessionEstimate"]

"""
Behavior learning: pure activity analysis and the persisted user profile.
"""

from flowcore.learning.behavior_analyzer import (
    ActivitySnapshot,
    BehaviorAnalyzer,
    render_report,
)
from flowcore.learning.intelligence import IntelligenceReport
from flowcore.learning.profile_learner import (
    ProductivityPersona,
    ProfileLearner,
    SuccessPattern,
    UserProfile,
)

__all__ = [
    "ActivitySnapshot",
    "BehaviorAnalyzer",
    "IntelligenceReport",
    "ProductivityPersona",
    "ProfileLearner",
    "SuccessPattern",
    "UserProfile",
    "render_report",
]

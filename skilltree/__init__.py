"""
SkillTree - learning-path progression engine.

Lays units out on a grid, derives which are locked, available or completed from the
learner's approved set, gates the final test, and runs test sessions with hearts,
streaks, a mistake review pass and resume.
"""

__version__ = "0.1.0"

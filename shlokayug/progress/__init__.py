"""Learner progress tracking.

Provides:
- Watch session recording and lecture completion cascade
- Completion, time and engagement statistics
- Daily streaks, weekly goals and achievements
- Versioned persistence of one progress document per user and course
"""

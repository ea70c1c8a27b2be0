"""
ChoreQuest backend.

Quest lifecycle, reward calculation and boss battle resolution for
family chore gamification.
"""

__version__ = "0.1.0"

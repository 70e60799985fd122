"""
Word Garden

Backend for a children's literacy app: Chinese and English new-word lists,
mastery tracking, experience and achievements, and an AI tutor proxy.
"""

from . import db
from . import errors
from . import mastery
from . import progression
from . import achievements
from . import vocabulary
from . import games
from . import accounts
from . import tutor
from . import drills

__version__ = "0.1.0"
__all__ = [
    "db", "errors", "mastery", "progression", "achievements",
    "vocabulary", "games", "accounts", "tutor", "drills",
]

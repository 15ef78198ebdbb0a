from app import db  # noqa: F401 - imported for model imports

from .game import Game
from .historical_stats import HistoricalStats, SeasonAlreadyArchivedError
from .pick import Pick
from .user import User

__all__ = [
    "User",
    "Game",
    "Pick",
    "HistoricalStats",
    "SeasonAlreadyArchivedError",
]

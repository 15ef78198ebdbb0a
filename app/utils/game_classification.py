"""
Game classification for CFB Pick'em

Single home of the game type constants and of the marker phrases that decide
whether a bowl or playoff game is premium. Every scoring path, diagnostic and
API response derives tiers through determine_bowl_tier().
"""


class GameType:
    REGULAR = "regular"
    CHAMPIONSHIP = "championship"
    BOWL = "bowl"
    PLAYOFF = "playoff"
    RIVALRY = "rivalry"

    ALL = (REGULAR, CHAMPIONSHIP, BOWL, PLAYOFF, RIVALRY)
    TIERED = (BOWL, PLAYOFF)


class BowlTier:
    PREMIUM = "premium"  # New Year's Six bowls and playoff games
    STANDARD = "standard"


# Any of these in the notes or game name makes a bowl/playoff game premium
PREMIUM_MARKERS = (
    "national championship",
    "semifinal",
    "semi-final",
    "playoff",
)

# New Year's Six bowls
NY6_BOWLS = (
    "rose bowl",
    "sugar bowl",
    "orange bowl",
    "cotton bowl",
    "fiesta bowl",
    "peach bowl",
)

PLAYOFF_KEYWORDS = (
    "playoff",
    "semifinal",
    "semi-final",
    "national championship",
    "cfp",
)

# Rivalry games that always carry a mandatory double down
RIVALRY_MATCHUPS = (("army", "navy"),)

MANDATORY_DOUBLE_DOWN_TYPES = (
    GameType.CHAMPIONSHIP,
    GameType.BOWL,
    GameType.PLAYOFF,
    GameType.RIVALRY,
)

# Names the external provider and older rows use for the same types
_TYPE_ALIASES = {
    "army_navy": GameType.RIVALRY,
    "army-navy": GameType.RIVALRY,
    "regular_season": GameType.REGULAR,
    "conference_championship": GameType.CHAMPIONSHIP,
}


class ScoringError(Exception):
    """Base class for errors raised while scoring picks"""


class InvalidGameTypeError(ScoringError, ValueError):
    """Raised when a game type is not one the points table knows about"""

    def __init__(self, game_type):
        self.game_type = game_type
        super().__init__(f"Unrecognized game type: {game_type!r}")


class GameClassification:
    """Result of classify(): the game type plus its scoring tier"""

    def __init__(self, game_type, tier=None):
        self.game_type = game_type
        self.tier = tier

    @property
    def is_double_down_required(self):
        return self.game_type in MANDATORY_DOUBLE_DOWN_TYPES

    @property
    def description(self):
        if self.game_type == GameType.REGULAR:
            return "Regular Season Game"
        if self.game_type == GameType.CHAMPIONSHIP:
            return "Conference Championship (Mandatory Double Down)"
        if self.game_type == GameType.RIVALRY:
            return "Army-Navy Game (Mandatory Double Down)"

        label = "Bowl Game" if self.game_type == GameType.BOWL else "College Football Playoff"
        if self.tier == BowlTier.PREMIUM:
            return f"{label} (Must Pick, 2 pts win / -1 loss)"
        return f"{label} (Must Pick, 1 pt win / 0 loss)"

    def __eq__(self, other):
        if not isinstance(other, GameClassification):
            return NotImplemented
        return (self.game_type, self.tier) == (other.game_type, other.tier)

    def __repr__(self):
        return f"<GameClassification {self.game_type} tier={self.tier}>"

    def to_dict(self):
        return {
            "game_type": self.game_type,
            "tier": self.tier,
            "description": self.description,
            "is_double_down_required": self.is_double_down_required,
        }


def normalize_game_type(game_type):
    """Return the canonical game type string or raise InvalidGameTypeError"""
    if game_type is None:
        raise InvalidGameTypeError(game_type)

    value = str(game_type).strip().lower()
    value = _TYPE_ALIASES.get(value, value)
    if value not in GameType.ALL:
        raise InvalidGameTypeError(game_type)
    return value


def determine_bowl_tier(notes=None, game_name=None):
    """Decide the tier of a bowl or playoff game from its free-text metadata

    Args:
        notes: Provider notes for the game (e.g. "Rose Bowl Game")
        game_name: Optional separate game name field

    Returns:
        BowlTier.PREMIUM on any marker or NY6 bowl match, else BowlTier.STANDARD
    """
    combined = f"{(notes or '').lower()} {(game_name or '').lower()}"

    if any(marker in combined for marker in PREMIUM_MARKERS):
        return BowlTier.PREMIUM

    if any(bowl in combined for bowl in NY6_BOWLS):
        return BowlTier.PREMIUM

    return BowlTier.STANDARD


def classify(game_type, notes=None, game_name=None):
    """Classify a game for scoring

    Tier is only meaningful for bowl and playoff games and is None otherwise.
    Raises InvalidGameTypeError for unknown game types.
    """
    game_type = normalize_game_type(game_type)

    if game_type in GameType.TIERED:
        return GameClassification(game_type, determine_bowl_tier(notes, game_name))

    return GameClassification(game_type)


def detect_game_type(home_team, away_team, notes=None, game_name=None):
    """Derive a game type from team names and provider metadata

    Used by the data sync when the provider does not label the game.
    """
    home = (home_team or "").lower()
    away = (away_team or "").lower()
    notes_lower = (notes or "").lower()
    name_lower = (game_name or "").lower()
    combined = f"{notes_lower} {name_lower}"

    for first, second in RIVALRY_MATCHUPS:
        if (first in home and second in away) or (second in home and first in away):
            return GameType.RIVALRY

    if any(keyword in combined for keyword in PLAYOFF_KEYWORDS):
        return GameType.PLAYOFF

    if "championship" in notes_lower:
        return GameType.CHAMPIONSHIP

    if "bowl" in combined:
        return GameType.BOWL

    return GameType.REGULAR

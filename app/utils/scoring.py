"""
Scoring Engine for CFB Pick'em

Pure functions for settling a pick against the spread and turning the outcome
into points. Persistence and batching live in app/services/scoring_service.py;
cached totals and their repair live in app/services/reconciliation_service.py.
"""

from app.utils.game_classification import (
    BowlTier,
    GameType,
    InvalidGameTypeError,
    ScoringError,
    classify,
    normalize_game_type,
)

PUSH = "Push"


class PickResult:
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    PENDING = "pending"
    # Legacy rows whose points cannot tell push from loss
    UNKNOWN = "unknown"

    SETTLED = (WIN, LOSS, PUSH)


class InvalidPickError(ScoringError, ValueError):
    """Raised when a pick names a team that is not playing in its game"""


class PickScore:
    """Outcome of scoring one pick"""

    def __init__(self, result, points, spread_winner, tier=None, game_type=None):
        self.result = result
        self.points = points
        self.spread_winner = spread_winner
        self.tier = tier
        self.game_type = game_type

    def __repr__(self):
        return f"<PickScore {self.result} {self.points:+d} winner={self.spread_winner}>"

    def to_dict(self):
        return {
            "result": self.result,
            "points": self.points,
            "spread_winner": self.spread_winner,
            "tier": self.tier,
            "game_type": self.game_type,
        }


def settle(home_score, away_score, locked_spread, home_team, away_team):
    """Determine who covered the spread

    The spread is home-relative: -7 means the home team is favored by 7.

    Returns:
        home_team, away_team, or PUSH when the adjusted margin is exactly zero
    """
    adjusted_home_margin = (home_score - away_score) + locked_spread

    if adjusted_home_margin > 0:
        return home_team
    if adjusted_home_margin < 0:
        return away_team
    return PUSH


def calculate_points(game_type, tier, is_win, is_push, is_double_down):
    """
    Points awarded for a settled pick.

    Premium bowls/playoffs: +2 win, -1 loss or push (double down ignored)
    Standard bowls/playoffs: +1 win, 0 loss or push
    Regular, championship and rivalry games: +1 win, -1 loss, 0 push,
    doubled for a double down.

    Raises:
        InvalidGameTypeError: game_type is not a known game type
    """
    game_type = normalize_game_type(game_type)
    won = is_win and not is_push

    if game_type in GameType.TIERED:
        if tier == BowlTier.PREMIUM:
            return 2 if won else -1
        return 1 if won else 0

    if is_push:
        return 0

    base = 1 if won else -1
    return base * 2 if is_double_down else base


def result_for(spread_winner, picked_team):
    """Map a settlement outcome to the pick's result tag"""
    if spread_winner == PUSH:
        return PickResult.PUSH
    if spread_winner == picked_team:
        return PickResult.WIN
    return PickResult.LOSS


def score_pick(pick, game):
    """
    Score a pick against its final game using the spread locked on the pick.

    Args:
        pick: Pick with picked_team, locked_spread and is_double_down
        game: The pick's Game; must be final

    Returns:
        PickScore

    Raises:
        InvalidGameTypeError: the game's type is not recognized
        InvalidPickError: the picked team is not playing in the game
        ValueError: the game has no final score yet
    """
    if not game.is_final:
        raise ValueError(f"Game {game.id} is not final")

    if pick.picked_team not in (game.home_team, game.away_team):
        raise InvalidPickError(
            f"Pick {pick.id} picked {pick.picked_team!r}, "
            f"not playing in {game.away_team} @ {game.home_team}"
        )

    classification = classify(game.game_type, game.notes, game.game_name)

    spread_winner = settle(
        game.home_score,
        game.away_score,
        pick.locked_spread,
        game.home_team,
        game.away_team,
    )
    result = result_for(spread_winner, pick.picked_team)

    points = calculate_points(
        classification.game_type,
        classification.tier,
        is_win=result == PickResult.WIN,
        is_push=result == PickResult.PUSH,
        is_double_down=bool(pick.is_double_down),
    )

    return PickScore(
        result,
        points,
        spread_winner,
        tier=classification.tier,
        game_type=classification.game_type,
    )


def legacy_points(is_win, is_double_down):
    """Points under the rule older rows were scored with: push counted as a loss"""
    if is_double_down:
        return 2 if is_win else -1
    return 1 if is_win else 0


def infer_result(game_type, tier, is_double_down, points):
    """
    Recover the outcome of a legacy pick stored without a result tag.

    A row may have been scored under the current points table or the older
    rule in legacy_points(), so an outcome is only returned when exactly one
    outcome produces the stored points under either of them. Otherwise the
    result is PickResult.UNKNOWN.
    """
    if points is None:
        return PickResult.PENDING

    matches = set()
    try:
        for outcome in PickResult.SETTLED:
            is_win = outcome == PickResult.WIN
            current = calculate_points(
                game_type,
                tier,
                is_win=is_win,
                is_push=outcome == PickResult.PUSH,
                is_double_down=bool(is_double_down),
            )
            if points in (current, legacy_points(is_win, bool(is_double_down))):
                matches.add(outcome)
    except InvalidGameTypeError:
        return PickResult.UNKNOWN

    if len(matches) == 1:
        return matches.pop()
    return PickResult.UNKNOWN

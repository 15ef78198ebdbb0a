import itertools
from types import SimpleNamespace

import pytest

from app.utils.game_classification import BowlTier, GameType, InvalidGameTypeError
from app.utils.scoring import (
    PUSH,
    InvalidPickError,
    PickResult,
    calculate_points,
    infer_result,
    legacy_points,
    result_for,
    score_pick,
    settle,
)

HOME = "Alabama"
AWAY = "Auburn"


def _game(home_score, away_score, game_type="regular", notes=None, completed=True, spread=0.0):
    return SimpleNamespace(
        id=1,
        home_team=HOME,
        away_team=AWAY,
        home_score=home_score,
        away_score=away_score,
        game_type=game_type,
        notes=notes,
        game_name=None,
        spread=spread,
        is_final=completed and home_score is not None and away_score is not None,
    )


def _pick(picked_team, locked_spread, is_double_down=False):
    return SimpleNamespace(
        id=1,
        picked_team=picked_team,
        locked_spread=locked_spread,
        is_double_down=is_double_down,
    )


class TestSettle:
    @pytest.mark.parametrize(
        "home_score, away_score, spread",
        list(itertools.product([0, 3, 17, 24, 45], [0, 7, 20, 31], [-14, -7, -3.5, 0, 2.5, 7, 10])),
    )
    def test_sign_of_adjusted_margin_decides(self, home_score, away_score, spread):
        winner = settle(home_score, away_score, spread, HOME, AWAY)
        adjusted = (home_score - away_score) + spread
        if adjusted > 0:
            assert winner == HOME
        elif adjusted < 0:
            assert winner == AWAY
        else:
            assert winner == PUSH

    def test_favorite_fails_to_cover(self):
        # Home favored by 7, wins by 4
        assert settle(24, 20, -7, HOME, AWAY) == AWAY

    def test_favorite_covers(self):
        assert settle(31, 20, -7, HOME, AWAY) == HOME

    def test_exact_spread_is_push(self):
        assert settle(27, 20, -7, HOME, AWAY) == PUSH

    def test_underdog_loses_inside_the_number(self):
        # Home getting 10, loses by 6
        assert settle(14, 20, 10, HOME, AWAY) == HOME

    def test_half_point_spread_never_pushes(self):
        for margin in range(-30, 31):
            assert settle(40 + margin, 40, -3.5, HOME, AWAY) != PUSH


class TestResultFor:
    def test_mapping(self):
        assert result_for(HOME, HOME) == PickResult.WIN
        assert result_for(AWAY, HOME) == PickResult.LOSS
        assert result_for(PUSH, HOME) == PickResult.PUSH


def _expected_points(game_type, tier, is_win, is_push, is_double_down):
    if game_type in (GameType.BOWL, GameType.PLAYOFF):
        if tier == BowlTier.PREMIUM:
            return 2 if is_win and not is_push else -1
        return 1 if is_win and not is_push else 0
    if is_push:
        return 0
    base = 1 if is_win else -1
    return base * (2 if is_double_down else 1)


class TestCalculatePoints:
    @pytest.mark.parametrize(
        "game_type, tier, is_win, is_push, is_double_down",
        list(
            itertools.product(
                GameType.ALL,
                [BowlTier.PREMIUM, BowlTier.STANDARD, None],
                [True, False],
                [True, False],
                [True, False],
            )
        ),
    )
    def test_full_table(self, game_type, tier, is_win, is_push, is_double_down):
        points = calculate_points(game_type, tier, is_win, is_push, is_double_down)
        assert points == _expected_points(game_type, tier, is_win, is_push, is_double_down)
        assert points in (-2, -1, 0, 1, 2)

    def test_premium_bowl_win_ignores_double_down(self):
        assert calculate_points("bowl", BowlTier.PREMIUM, True, False, False) == 2
        assert calculate_points("bowl", BowlTier.PREMIUM, True, False, True) == 2

    def test_premium_push_costs_a_point(self):
        assert calculate_points("playoff", BowlTier.PREMIUM, False, True, True) == -1

    def test_standard_bowl_loss_is_free(self):
        assert calculate_points("bowl", BowlTier.STANDARD, False, False, True) == 0

    def test_double_down_push_is_zero(self):
        assert calculate_points("championship", None, False, True, True) == 0

    def test_push_wins_over_win_flag(self):
        assert calculate_points("regular", None, True, True, True) == 0

    def test_double_down_loss(self):
        assert calculate_points("rivalry", None, False, False, True) == -2

    def test_unknown_type_is_not_defaulted(self):
        with pytest.raises(InvalidGameTypeError):
            calculate_points("exhibition", None, True, False, False)


class TestScorePick:
    def test_uses_locked_spread(self):
        # Line moved from -7 to -3 after the pick was made
        game = _game(24, 20, spread=-3)
        score = score_pick(_pick(HOME, -7), game)
        assert score.spread_winner == AWAY
        assert score.result == PickResult.LOSS
        assert score.points == -1

    def test_premium_bowl_win(self):
        game = _game(35, 14, game_type="bowl", notes="Rose Bowl Game")
        score = score_pick(_pick(HOME, -6.5, is_double_down=True), game)
        assert (score.result, score.points, score.tier) == (PickResult.WIN, 2, BowlTier.PREMIUM)

    def test_standard_bowl_loss(self):
        game = _game(10, 28, game_type="bowl", notes="Armed Forces Bowl")
        score = score_pick(_pick(HOME, -3), game)
        assert (score.result, score.points) == (PickResult.LOSS, 0)

    def test_double_down_push(self):
        game = _game(27, 20, game_type="championship")
        score = score_pick(_pick(AWAY, -7, is_double_down=True), game)
        assert (score.result, score.points) == (PickResult.PUSH, 0)

    def test_game_not_final(self):
        with pytest.raises(ValueError):
            score_pick(_pick(HOME, -7), _game(None, None, completed=False))

    def test_completed_without_scores_is_not_final(self):
        with pytest.raises(ValueError):
            score_pick(_pick(HOME, -7), _game(21, None))

    def test_team_not_in_game(self):
        with pytest.raises(InvalidPickError):
            score_pick(_pick("Georgia", -7), _game(21, 14))

    def test_invalid_game_type(self):
        with pytest.raises(InvalidGameTypeError):
            score_pick(_pick(HOME, -7), _game(21, 14, game_type="scrimmage"))

    def test_to_dict(self):
        data = score_pick(_pick(HOME, -7), _game(31, 20)).to_dict()
        assert data == {
            "result": PickResult.WIN,
            "points": 1,
            "spread_winner": HOME,
            "tier": None,
            "game_type": "regular",
        }


class TestInferResult:
    def test_pending(self):
        assert infer_result("regular", None, False, None) == PickResult.PENDING

    @pytest.mark.parametrize(
        "game_type, tier, dd, points, expected",
        [
            ("regular", None, False, 1, PickResult.WIN),
            ("regular", None, False, -1, PickResult.LOSS),
            # 0 is a push now but was also a loss before pushes scored separately
            ("regular", None, False, 0, PickResult.UNKNOWN),
            ("rivalry", None, False, 0, PickResult.UNKNOWN),
            ("regular", None, True, -1, PickResult.UNKNOWN),
            ("regular", None, True, 0, PickResult.PUSH),
            ("championship", None, True, -2, PickResult.LOSS),
            ("bowl", BowlTier.PREMIUM, True, 2, PickResult.WIN),
            ("bowl", BowlTier.PREMIUM, False, -1, PickResult.UNKNOWN),
            ("bowl", BowlTier.PREMIUM, False, 0, PickResult.UNKNOWN),
            ("bowl", BowlTier.STANDARD, False, 0, PickResult.UNKNOWN),
            ("bowl", BowlTier.STANDARD, False, 1, PickResult.WIN),
            ("regular", None, False, 5, PickResult.UNKNOWN),
            ("scrimmage", None, False, 1, PickResult.UNKNOWN),
        ],
    )
    def test_inference(self, game_type, tier, dd, points, expected):
        assert infer_result(game_type, tier, dd, points) == expected

    def test_legacy_rule_points(self):
        assert legacy_points(is_win=True, is_double_down=False) == 1
        assert legacy_points(is_win=False, is_double_down=False) == 0
        assert legacy_points(is_win=True, is_double_down=True) == 2
        assert legacy_points(is_win=False, is_double_down=True) == -1

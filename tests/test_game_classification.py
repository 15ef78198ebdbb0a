import pytest

from app.utils.game_classification import (
    BowlTier,
    GameClassification,
    GameType,
    InvalidGameTypeError,
    ScoringError,
    classify,
    detect_game_type,
    determine_bowl_tier,
    normalize_game_type,
)


@pytest.mark.parametrize(
    "notes, game_name",
    [
        ("Rose Bowl Game", None),
        ("Allstate Sugar Bowl", None),
        (None, "Capital One Orange Bowl"),
        ("Goodyear Cotton Bowl Classic", None),
        ("Vrbo Fiesta Bowl", None),
        ("Chick-fil-A Peach Bowl", None),
        ("CFP Semifinal", None),
        ("College Football Playoff First Round", None),
        ("CFP National Championship", None),
        ("semi-final at the Orange", None),
    ],
)
def test_premium_markers(notes, game_name):
    assert determine_bowl_tier(notes, game_name) == BowlTier.PREMIUM


@pytest.mark.parametrize(
    "notes, game_name",
    [
        ("Duke's Mayo Bowl", None),
        ("Gasparilla Bowl", "Union Home Mortgage Gasparilla Bowl"),
        ("", None),
        (None, None),
    ],
)
def test_standard_bowls(notes, game_name):
    assert determine_bowl_tier(notes, game_name) == BowlTier.STANDARD


def test_marker_match_is_case_insensitive():
    assert determine_bowl_tier("ROSE BOWL GAME") == BowlTier.PREMIUM


def test_classify_gives_tier_only_to_bowls_and_playoffs():
    assert classify("regular") == GameClassification(GameType.REGULAR)
    assert classify("championship", notes="Big Ten Championship").tier is None
    assert classify("rivalry").tier is None
    assert classify("bowl", notes="Rose Bowl Game").tier == BowlTier.PREMIUM
    assert classify("bowl", notes="Armed Forces Bowl").tier == BowlTier.STANDARD


def test_playoff_without_notes_is_standard():
    assert classify("playoff").tier == BowlTier.STANDARD


def test_classify_normalizes_aliases():
    assert classify("ARMY_NAVY").game_type == GameType.RIVALRY
    assert classify(" Regular ").game_type == GameType.REGULAR
    assert normalize_game_type("conference_championship") == GameType.CHAMPIONSHIP


@pytest.mark.parametrize("bad", ["exhibition", "", None, "bowls"])
def test_unknown_game_type_raises(bad):
    with pytest.raises(InvalidGameTypeError) as excinfo:
        classify(bad)
    assert excinfo.value.game_type == bad
    assert isinstance(excinfo.value, ScoringError)
    assert isinstance(excinfo.value, ValueError)


def test_double_down_required_types():
    assert not classify("regular").is_double_down_required
    for game_type in ("championship", "bowl", "playoff", "rivalry"):
        assert classify(game_type).is_double_down_required


def test_classification_to_dict():
    data = classify("bowl", notes="Rose Bowl Game").to_dict()
    assert data["game_type"] == "bowl"
    assert data["tier"] == "premium"
    assert data["is_double_down_required"] is True
    assert "2 pts" in data["description"]


@pytest.mark.parametrize(
    "home, away, notes, game_name, expected",
    [
        ("Army", "Navy", None, None, GameType.RIVALRY),
        ("Navy Midshipmen", "Army Black Knights", "Army-Navy Game", None, GameType.RIVALRY),
        ("Georgia", "Texas", "SEC Championship", None, GameType.CHAMPIONSHIP),
        ("Oregon", "Ohio State", "Rose Bowl Game - CFP Quarterfinal", None, GameType.PLAYOFF),
        ("Notre Dame", "Ohio State", "CFP National Championship", None, GameType.PLAYOFF),
        ("Iowa", "Missouri", None, "Music City Bowl", GameType.BOWL),
        ("Iowa", "Nebraska", None, None, GameType.REGULAR),
    ],
)
def test_detect_game_type(home, away, notes, game_name, expected):
    assert detect_game_type(home, away, notes, game_name) == expected

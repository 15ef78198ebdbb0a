from app import db
from app.models import Pick
from app.utils.scoring import PickResult
from migrations import add_pick_result_column


def test_backfill_tags_only_unambiguous_rows(make_user, make_game, make_pick):
    user = make_user()
    won = make_game(week=1, home_score=21, away_score=14)
    lost = make_game(week=2, home_score=14, away_score=21, home_team="Texas", away_team="Oklahoma")
    double_down = make_game(week=3, home_score=14, away_score=21, home_team="USC", away_team="UCLA")

    win = make_pick(user, won, points=1)
    zero = make_pick(user, lost, points=0)
    dd_minus_one = make_pick(user, double_down, points=-1, is_double_down=True)
    tagged = make_pick(make_user(), lost, picked_team="Oklahoma", points=1, result=PickResult.WIN)

    add_pick_result_column.upgrade()

    db.session.expire_all()
    assert db.session.get(Pick, win.id).result == PickResult.WIN
    assert db.session.get(Pick, zero.id).result is None
    assert db.session.get(Pick, dd_minus_one.id).result is None
    assert db.session.get(Pick, tagged.id).result == PickResult.WIN
    assert db.session.get(Pick, zero.id).outcome == PickResult.UNKNOWN

import pytest

from app import db
from app.models import User
from app.services.reconciliation_service import (
    ReconciliationService,
    reconciliation_service,
)
from app.services.scoring_service import ScoringInProgressError, scoring_service
from app.utils.scoring import PickResult


def _seed(make_user, make_game, make_pick):
    in_sync = make_user(name="In Sync", total_score=2)
    drifted = make_user(name="Drifted", total_score=7)
    nobody = make_user(name="No Picks", total_score=-1)

    game = make_game(home_score=21, away_score=14)
    other = make_game(week=2, home_score=10, away_score=17)
    unscored = make_game(week=3)

    make_pick(in_sync, game, points=1, result=PickResult.WIN)
    make_pick(in_sync, other, picked_team="Michigan", points=1, result=PickResult.WIN)
    make_pick(drifted, game, picked_team="Michigan", points=-1, result=PickResult.LOSS)
    make_pick(drifted, unscored)
    return in_sync, drifted, nobody


def test_audit_reports_discrepancies(make_user, make_game, make_pick):
    in_sync, drifted, nobody = _seed(make_user, make_game, make_pick)

    report = reconciliation_service.audit()

    rows = {row["id"]: row for row in report["users"]}
    assert rows[in_sync.id]["has_discrepancy"] is False
    assert rows[drifted.id]["stored_total"] == 7
    assert rows[drifted.id]["calculated_total"] == -1
    assert rows[drifted.id]["discrepancy"] == 8
    assert rows[drifted.id]["total_picks"] == 1
    assert rows[nobody.id]["discrepancy"] == -1

    assert report["summary"] == {
        "total_users": 3,
        "users_with_discrepancies": 2,
        "total_discrepancy": 9,
    }


def test_audit_sorted_by_size_of_discrepancy(make_user, make_game, make_pick):
    _, drifted, nobody = _seed(make_user, make_game, make_pick)

    ids = [row["id"] for row in reconciliation_service.audit()["users"]]

    assert ids[:2] == [drifted.id, nobody.id]


def test_audit_does_not_write(make_user, make_game, make_pick):
    _, drifted, _ = _seed(make_user, make_game, make_pick)

    reconciliation_service.audit()

    db.session.expire_all()
    assert db.session.get(User, drifted.id).total_score == 7


def test_resync_converges_and_is_idempotent(make_user, make_game, make_pick):
    in_sync, drifted, nobody = _seed(make_user, make_game, make_pick)

    first = reconciliation_service.resync()

    assert first["updated_users"] == 3
    assert first["corrected_users"] == 2
    assert {c["user_id"]: c["new_total"] for c in first["corrections"]} == {
        drifted.id: -1,
        nobody.id: 0,
    }
    assert reconciliation_service.audit()["summary"]["users_with_discrepancies"] == 0

    db.session.expire_all()
    totals = {u.id: u.total_score for u in User.query.all()}

    second = reconciliation_service.resync()

    db.session.expire_all()
    assert second["corrected_users"] == 0
    assert {u.id: u.total_score for u in User.query.all()} == totals
    assert totals[in_sync.id] == 2


def test_resync_dry_run(make_user, make_game, make_pick):
    _, drifted, _ = _seed(make_user, make_game, make_pick)

    result = reconciliation_service.resync(dry_run=True)

    assert result["updated_users"] == 0
    assert result["corrected_users"] == 2
    db.session.expire_all()
    assert db.session.get(User, drifted.id).total_score == 7


def test_resync_refuses_while_scoring_runs(make_user, make_game, make_pick):
    _, drifted, _ = _seed(make_user, make_game, make_pick)

    scoring_service._lock.acquire()
    try:
        with pytest.raises(ScoringInProgressError):
            reconciliation_service.resync()
    finally:
        scoring_service._lock.release()

    db.session.expire_all()
    assert db.session.get(User, drifted.id).total_score == 7
    assert not scoring_service.is_running


def test_settle_during_resync_is_blocked(monkeypatch, make_user, make_game, make_pick):
    user = make_user()
    make_pick(user, make_game(home_score=21, away_score=14))

    read_ledger = ReconciliationService._ledger_totals
    blocked = []

    def ledger_then_settle(self):
        totals = read_ledger(self)
        try:
            scoring_service.settle_unscored_picks()
        except ScoringInProgressError:
            blocked.append(True)
        return totals

    monkeypatch.setattr(ReconciliationService, "_ledger_totals", ledger_then_settle)

    reconciliation_service.resync()

    assert blocked == [True]
    assert reconciliation_service.audit()["summary"]["users_with_discrepancies"] == 0


def test_resync_keeps_picks_scored_after_ledger_read(
    monkeypatch, make_user, make_game, make_pick
):
    user = make_user()
    make_pick(user, make_game(home_score=21, away_score=14))

    read_ledger = ReconciliationService._ledger_totals

    def ledger_then_score_elsewhere(self):
        totals = read_ledger(self)
        # Another process scoring the pick; it does not share the in-process lock
        scoring_service._settle()
        return totals

    monkeypatch.setattr(
        ReconciliationService, "_ledger_totals", ledger_then_score_elsewhere
    )

    reconciliation_service.resync()

    db.session.expire_all()
    assert db.session.get(User, user.id).total_score == 1
    assert reconciliation_service.audit()["summary"]["users_with_discrepancies"] == 0

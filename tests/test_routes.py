import pytest

from app import db
from app.models import Pick, User
from app.services.scoring_service import scoring_service
from app.utils.scoring import PickResult

ADMIN_ENDPOINTS = [
    ("get", "/admin/csrf-token"),
    ("get", "/admin/scoring/status"),
    ("post", "/admin/scoring/settle"),
    ("post", "/admin/scoring/reset"),
    ("get", "/admin/scoring/diagnose"),
    ("post", "/admin/scoring/double-downs"),
    ("get", "/admin/scores/audit"),
    ("post", "/admin/scores/resync"),
    ("get", "/admin/games/missing-scores"),
    ("get", "/admin/seasons/archive"),
    ("get", "/admin/scheduler"),
]


@pytest.mark.parametrize("method, path", ADMIN_ENDPOINTS)
def test_admin_endpoints_require_login(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 401


@pytest.mark.parametrize("method, path", ADMIN_ENDPOINTS)
def test_admin_endpoints_reject_regular_users(app, make_user, method, path):
    client = app.test_client(user=make_user())
    response = getattr(client, method)(path)
    assert response.status_code == 403


def test_settle_endpoint(admin_client, make_user, make_game, make_pick):
    user = make_user()
    make_pick(user, make_game(home_score=24, away_score=20, spread=-7), picked_team="Michigan")

    response = admin_client.post("/admin/scoring/settle", json={"dry_run": False})

    assert response.status_code == 200
    assert response.json["updated"] == 1
    db.session.expire_all()
    assert db.session.get(User, user.id).total_score == 1


def test_settle_endpoint_conflict_while_running(admin_client):
    scoring_service._lock.acquire()
    try:
        response = admin_client.post("/admin/scoring/settle", json={})
    finally:
        scoring_service._lock.release()

    assert response.status_code == 409


def test_reset_endpoint_dry_run(admin_client, make_user, make_game, make_pick):
    user = make_user(total_score=1)
    game = make_game(home_score=35, away_score=14, game_type="bowl", notes="Rose Bowl Game")
    pick = make_pick(user, game, points=1, result=PickResult.WIN)

    response = admin_client.post(
        "/admin/scoring/reset", json={"game_types": ["bowl"], "dry_run": True}
    )

    assert response.status_code == 200
    assert response.json["changed_picks"] == 1
    db.session.expire_all()
    assert db.session.get(Pick, pick.id).points == 1


def test_reset_endpoint_rejects_unknown_game_type(admin_client):
    response = admin_client.post("/admin/scoring/reset", json={"game_types": ["exhibition"]})
    assert response.status_code == 400


def test_reset_endpoint_rejects_bad_season(admin_client):
    response = admin_client.post("/admin/scoring/reset", json={"season": "last year"})
    assert response.status_code == 400
    assert "season" in response.json["error"]


def test_audit_and_resync_endpoints(admin_client, make_user, make_game, make_pick):
    user = make_user(total_score=10)
    make_pick(user, make_game(home_score=21, away_score=14), points=1, result=PickResult.WIN)

    audit = admin_client.get("/admin/scores/audit")
    assert audit.json["summary"]["users_with_discrepancies"] == 1

    resync = admin_client.post("/admin/scores/resync", json={})
    assert resync.json["corrected_users"] == 1

    audit = admin_client.get("/admin/scores/audit")
    assert audit.json["summary"]["users_with_discrepancies"] == 0


def test_admin_posts_need_csrf_token(app, admin_client):
    app.config["WTF_CSRF_ENABLED"] = True

    rejected = admin_client.post("/admin/scores/resync", json={"dry_run": True})
    assert rejected.status_code == 400
    assert rejected.json["error"] == "Invalid or missing CSRF token"

    token = admin_client.get("/admin/csrf-token").json["csrf_token"]
    accepted = admin_client.post(
        "/admin/scores/resync", json={"dry_run": True}, headers={"X-CSRFToken": token}
    )
    assert accepted.status_code == 200
    assert accepted.json["dry_run"] is True


def test_missing_scores_endpoint(admin_client, make_game):
    make_game(home_score=14, completed=True)
    make_game(week=2, home_score=14, away_score=7)

    response = admin_client.get("/admin/games/missing-scores")

    assert response.json["count"] == 1


def test_archive_endpoint(admin_client, make_user, make_game, make_pick):
    make_pick(make_user(), make_game(home_score=21, away_score=14), points=1, result=PickResult.WIN)

    response = admin_client.post("/admin/seasons/archive", json={"season": 2024})
    assert response.status_code == 200
    assert response.json["standings"][0]["rank"] == 1

    again = admin_client.post("/admin/seasons/archive", json={"season": 2024})
    assert again.status_code == 400


def test_scheduler_status_endpoint(admin_client):
    response = admin_client.get("/admin/scheduler")
    assert response.status_code == 200
    assert "jobs" in response.json

    unknown = admin_client.post("/admin/scheduler", json={"action": "explode"})
    assert unknown.status_code == 400


def test_public_leaderboard(client, make_user, make_game, make_pick):
    make_pick(make_user(name="Top"), make_game(home_score=21, away_score=14), points=1)

    response = client.get("/api/leaderboard")

    assert response.status_code == 200
    assert response.json["leaderboard"][0]["name"] == "Top"


def test_weekly_picks(client, make_user, make_game, make_pick):
    user = make_user()
    make_pick(user, make_game(week=4, home_score=21, away_score=14), points=1, result=PickResult.WIN)

    response = client.get(f"/api/users/{user.id}/weekly-picks?season=2024&week=4")

    assert response.status_code == 200
    assert response.json["week_points"] == 1
    assert response.json["picks"][0]["result"] == PickResult.WIN

    assert client.get(f"/api/users/{user.id}/weekly-picks").status_code == 400
    assert client.get("/api/users/999/weekly-picks?season=2024&week=4").status_code == 404


def test_game_detail(client, make_game):
    game = make_game(game_type="bowl", notes="Rose Bowl Game")

    response = client.get(f"/api/games/{game.id}")

    assert response.json["tier"] == "premium"
    assert client.get("/api/games/999").status_code == 404


def test_historical_stats_endpoint(client):
    assert client.get("/api/historical-stats").json == {"seasons": []}
    assert client.get("/api/historical-stats?season=2020").status_code == 404


def test_security_headers(client):
    response = client.get("/api/health")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"

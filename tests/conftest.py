import itertools
from datetime import datetime, timedelta, timezone

import pytest
from flask_login import FlaskLoginClient

from app import create_app, db
from app.models import Game, Pick, User

SEASON_START = datetime(2024, 8, 31, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app("testing")
    app.test_client_class = FlaskLoginClient

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make_user(name=None, total_score=0, is_admin=False, is_active=True):
        n = next(counter)
        user = User(
            name=name or f"Player {n}",
            email=f"player{n}@example.com",
            total_score=total_score,
            is_admin=is_admin,
            is_active=is_active,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_game(app):
    def _make_game(
        home_team="Ohio State",
        away_team="Michigan",
        home_score=None,
        away_score=None,
        completed=None,
        spread=0.0,
        game_type="regular",
        notes=None,
        game_name=None,
        season=2024,
        week=1,
    ):
        if completed is None:
            completed = home_score is not None and away_score is not None
        game = Game(
            home_team=home_team,
            away_team=away_team,
            home_score=home_score,
            away_score=away_score,
            completed=completed,
            spread=spread,
            game_type=game_type,
            notes=notes,
            game_name=game_name,
            season=season,
            week=week,
            start_time=SEASON_START + timedelta(weeks=week - 1),
        )
        db.session.add(game)
        db.session.commit()
        return game

    return _make_game


@pytest.fixture
def make_pick(app):
    def _make_pick(
        user,
        game,
        picked_team=None,
        locked_spread=None,
        is_double_down=False,
        points=None,
        result=None,
    ):
        pick = Pick(
            user_id=user.id,
            game_id=game.id,
            picked_team=picked_team or game.home_team,
            locked_spread=game.spread if locked_spread is None else locked_spread,
            is_double_down=is_double_down,
            points=points,
            result=result,
        )
        db.session.add(pick)
        db.session.commit()
        return pick

    return _make_pick


@pytest.fixture
def admin(make_user):
    return make_user(name="Commissioner", is_admin=True)


@pytest.fixture
def admin_client(app, admin):
    return app.test_client(user=admin)

from datetime import datetime, timezone

from flask_login import UserMixin

from app import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100))
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)

    # Cached sum of points over scored picks. Written only by the scoring
    # service (per-pick increment) and the reconciliation resync.
    total_score = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    picks = db.relationship(
        "Pick", back_populates="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def display_name(self):
        """Return name or the local part of the email"""
        return self.name or self.email.split("@")[0]

    @staticmethod
    def get_leaderboard(season=None):
        """Leaderboard computed from the pick ledger rather than total_score

        Args:
            season: Optional season year; all seasons when omitted

        Returns:
            List of dicts sorted by total score (highest first)
        """
        from sqlalchemy.orm import joinedload

        from .game import Game
        from .pick import Pick

        from app.utils.scoring import PickResult

        users = User.query.filter_by(is_active=True).all()

        picks_query = Pick.query.join(Game).options(joinedload(Pick.game))
        if season is not None:
            picks_query = picks_query.filter(Game.season == season)

        picks_by_user = {}
        for pick in picks_query.all():
            picks_by_user.setdefault(pick.user_id, []).append(pick)

        leaderboard = []
        for user in users:
            picks = picks_by_user.get(user.id, [])
            scored = [p for p in picks if p.points is not None]
            outcomes = [p.outcome for p in scored]

            wins = outcomes.count(PickResult.WIN)
            weekly = {}
            for pick in scored:
                key = (pick.game.season, pick.game.week)
                entry = weekly.setdefault(
                    key,
                    {"season": pick.game.season, "week": pick.game.week, "picks": 0, "points": 0},
                )
                entry["picks"] += 1
                entry["points"] += pick.points

            leaderboard.append(
                {
                    "user_id": user.id,
                    "name": user.display_name,
                    "total_score": sum(p.points for p in scored),
                    "total_picks": len(scored),
                    "pending_picks": len(picks) - len(scored),
                    "wins": wins,
                    "losses": outcomes.count(PickResult.LOSS),
                    "pushes": outcomes.count(PickResult.PUSH),
                    "unknown_outcomes": outcomes.count(PickResult.UNKNOWN),
                    "win_percentage": (wins / len(scored) * 100) if scored else 0,
                    "double_downs": sum(1 for p in scored if p.is_double_down),
                    "double_down_wins": sum(
                        1
                        for p, outcome in zip(scored, outcomes)
                        if p.is_double_down and outcome == PickResult.WIN
                    ),
                    "weekly_stats": sorted(
                        weekly.values(),
                        key=lambda w: (w["season"], w["week"]),
                        reverse=True,
                    ),
                }
            )

        leaderboard.sort(key=lambda entry: entry["total_score"], reverse=True)
        return leaderboard

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.display_name,
            "total_score": self.total_score,
            "is_admin": self.is_admin,
        }

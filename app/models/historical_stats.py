from datetime import datetime, timezone
import logging

from app import db

logger = logging.getLogger(__name__)


class SeasonAlreadyArchivedError(Exception):
    """Raised when archiving a season that already has snapshots"""

    def __init__(self, season):
        self.season = season
        super().__init__(f"Season {season} is already archived")


class HistoricalStats(db.Model):
    """Final standings of one user for one season

    Written once by archive_season() after the season ends and never updated.
    """
    __tablename__ = "historical_stats"

    id = db.Column(db.Integer, primary_key=True)

    season = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Copied so the archive reads the same after a user is renamed
    user_name = db.Column(db.String(100), nullable=False)
    user_email = db.Column(db.String(120), nullable=False)

    final_score = db.Column(db.Integer, default=0)
    total_picks = db.Column(db.Integer, default=0)
    correct_picks = db.Column(db.Integer, default=0)
    win_percentage = db.Column(db.Float, default=0.0)
    double_downs = db.Column(db.Integer, default=0)
    correct_double_downs = db.Column(db.Integer, default=0)
    rank = db.Column(db.Integer, nullable=False)
    total_users = db.Column(db.Integer, nullable=False)

    archived_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", backref="historical_stats")

    __table_args__ = (
        db.UniqueConstraint("season", "user_id", name="unique_season_user_stats"),
        db.Index("idx_historical_season", "season"),
    )

    def __repr__(self):
        return f"<HistoricalStats season={self.season} user={self.user_id} rank={self.rank}>"

    @staticmethod
    def is_archived(season):
        return HistoricalStats.query.filter_by(season=season).first() is not None

    @staticmethod
    def archive_season(season):
        """Snapshot every user's standing for a finished season

        Final score is the sum of the season's scored pick points. Users with
        equal scores share a rank (1, 2, 2, 4).

        Args:
            season: Season year

        Returns:
            List of created HistoricalStats rows ordered by rank

        Raises:
            SeasonAlreadyArchivedError: the season was archived before
        """
        from app.utils.scoring import PickResult

        from .game import Game
        from .pick import Pick
        from .user import User

        if HistoricalStats.is_archived(season):
            raise SeasonAlreadyArchivedError(season)

        users = User.query.all()
        season_picks = Pick.query.join(Game).filter(Game.season == season).all()

        picks_by_user = {}
        for pick in season_picks:
            picks_by_user.setdefault(pick.user_id, []).append(pick)

        rows = []
        for user in users:
            picks = picks_by_user.get(user.id, [])
            scored = [p for p in picks if p.points is not None and p.game.completed]
            correct = [p for p in scored if p.outcome == PickResult.WIN]
            double_downs = [p for p in picks if p.is_double_down]

            rows.append(
                HistoricalStats(
                    season=season,
                    user_id=user.id,
                    user_name=user.display_name,
                    user_email=user.email,
                    final_score=sum(p.points for p in scored),
                    total_picks=len(picks),
                    correct_picks=len(correct),
                    win_percentage=(
                        round(len(correct) / len(scored) * 100, 2) if scored else 0.0
                    ),
                    double_downs=len(double_downs),
                    correct_double_downs=sum(
                        1 for p in double_downs if p.outcome == PickResult.WIN
                    ),
                )
            )

        rows.sort(key=lambda row: row.final_score, reverse=True)
        total_users = len(rows)
        current_rank = 1
        for index, row in enumerate(rows):
            if index > 0 and row.final_score != rows[index - 1].final_score:
                current_rank = index + 1
            row.rank = current_rank
            row.total_users = total_users
            db.session.add(row)

        try:
            db.session.commit()
            logger.info(f"Archived {total_users} user records for season {season}")
        except Exception as e:
            logger.error(f"Error archiving season {season}: {e}")
            db.session.rollback()
            raise

        return rows

    @staticmethod
    def get_archivable_seasons():
        """Seasons with games that have not been archived yet"""
        from .game import Game

        seasons = [
            row[0]
            for row in db.session.query(Game.season).distinct().order_by(Game.season.desc())
        ]
        archived = set(HistoricalStats.get_archived_seasons())
        return [s for s in seasons if s not in archived]

    @staticmethod
    def get_archived_seasons():
        return [
            row[0]
            for row in db.session.query(HistoricalStats.season)
            .distinct()
            .order_by(HistoricalStats.season.desc())
        ]

    @staticmethod
    def get_season(season):
        return (
            HistoricalStats.query.filter_by(season=season)
            .order_by(HistoricalStats.rank, HistoricalStats.user_name)
            .all()
        )

    @staticmethod
    def get_season_summaries():
        """One line per archived season with its champion"""
        summaries = []
        for season in HistoricalStats.get_archived_seasons():
            champion = (
                HistoricalStats.query.filter_by(season=season, rank=1)
                .order_by(HistoricalStats.user_name)
                .first()
            )
            summaries.append(
                {
                    "season": season,
                    "champion": champion.user_name if champion else "Unknown",
                    "champion_score": champion.final_score if champion else 0,
                    "total_users": champion.total_users if champion else 0,
                    "archived_at": (
                        champion.archived_at.isoformat()
                        if champion and champion.archived_at
                        else None
                    ),
                }
            )
        return summaries

    def to_dict(self):
        """Convert snapshot to dictionary for API responses"""
        return {
            "id": self.id,
            "season": self.season,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "final_score": self.final_score,
            "total_picks": self.total_picks,
            "correct_picks": self.correct_picks,
            "win_percentage": self.win_percentage,
            "double_downs": self.double_downs,
            "correct_double_downs": self.correct_double_downs,
            "rank": self.rank,
            "total_users": self.total_users,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
        }

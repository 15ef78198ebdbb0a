from datetime import datetime, timezone

from app import db


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Game identification
    external_id = db.Column(db.String(50), unique=True, index=True)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams
    home_team = db.Column(db.String(100), nullable=False)
    away_team = db.Column(db.String(100), nullable=False)

    # Game timing
    start_time = db.Column(db.DateTime, nullable=False)

    # Scores (NULL until the provider reports them)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Line at the time of the last sync (negative = home team favored).
    # Picks carry their own locked_spread; scoring never reads this.
    spread = db.Column(db.Float, nullable=False, default=0.0)

    # Classification
    game_type = db.Column(db.String(20), nullable=False, default="regular")
    notes = db.Column(db.String(255))
    game_name = db.Column(db.String(255))

    # Game status
    completed = db.Column(db.Boolean, nullable=False, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    picks = db.relationship(
        "Pick", back_populates="game", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.Index("idx_game_completed", "completed"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
    )

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} {self.season} Week {self.week}>"

    @property
    def matchup(self):
        return f"{self.away_team} @ {self.home_team}"

    @property
    def is_final(self):
        """Completed and both scores reported"""
        return bool(
            self.completed
            and self.home_score is not None
            and self.away_score is not None
        )

    @property
    def has_missing_scores(self):
        """Marked completed before the provider sent both scores"""
        return bool(self.completed) and (
            self.home_score is None or self.away_score is None
        )

    @property
    def winner(self):
        """Straight-up winner's team name (None if not final or tied)"""
        if not self.is_final or self.home_score == self.away_score:
            return None
        return self.home_team if self.home_score > self.away_score else self.away_team

    @property
    def final_score(self):
        if not self.is_final:
            return None
        return f"{self.away_team} {self.away_score}, {self.home_team} {self.home_score}"

    @property
    def classification(self):
        """Game type and tier; raises InvalidGameTypeError for unknown types"""
        from app.utils.game_classification import classify

        return classify(self.game_type, self.notes, self.game_name)

    @staticmethod
    def get_completed_missing_scores():
        """Games flagged completed whose scores have not arrived yet"""
        return (
            Game.query.filter(
                Game.completed.is_(True),
                db.or_(Game.home_score.is_(None), Game.away_score.is_(None)),
            )
            .order_by(Game.season.desc(), Game.week.desc())
            .all()
        )

    @staticmethod
    def final_filter():
        """SQL criteria matching Game.is_final"""
        return (
            Game.completed.is_(True),
            Game.home_score.isnot(None),
            Game.away_score.isnot(None),
        )

    def to_dict(self):
        """Convert game to dictionary for API responses"""
        from app.utils.game_classification import InvalidGameTypeError

        try:
            tier = self.classification.tier
        except InvalidGameTypeError:
            tier = None

        return {
            "id": self.id,
            "external_id": self.external_id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread": self.spread,
            "game_type": self.game_type,
            "tier": tier,
            "notes": self.notes,
            "completed": self.completed,
            "is_final": self.is_final,
            "missing_scores": self.has_missing_scores,
            "winner": self.winner,
            "start_time": self.start_time.isoformat() if self.start_time else None,
        }

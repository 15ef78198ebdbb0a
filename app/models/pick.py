from datetime import datetime, timezone

from app import db


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Pick details
    picked_team = db.Column(db.String(100), nullable=False)
    locked_spread = db.Column(
        db.Float, nullable=False
    )  # Spread at submission time; later line moves never touch it
    is_double_down = db.Column(db.Boolean, nullable=False, default=False)

    # Results (set once by the scoring service, NULL while unscored)
    points = db.Column(db.Integer)
    result = db.Column(db.String(10))
    scored_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    user = db.relationship("User", back_populates="picks")
    game = db.relationship("Game", back_populates="picks")

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_pick"),
        db.Index("idx_pick_user", "user_id"),
        db.Index("idx_pick_game", "game_id"),
        db.Index("idx_pick_points", "points"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} game_id={self.game_id} team={self.picked_team}>"

    @property
    def is_scored(self):
        return self.points is not None

    @property
    def outcome(self):
        """Result tag, inferring it for legacy rows that only stored points"""
        from app.utils.game_classification import InvalidGameTypeError
        from app.utils.scoring import PickResult, infer_result

        if self.points is None:
            return PickResult.PENDING
        if self.result in PickResult.SETTLED:
            return self.result

        if not self.game:
            return PickResult.UNKNOWN
        try:
            tier = self.game.classification.tier
        except InvalidGameTypeError:
            return PickResult.UNKNOWN
        return infer_result(self.game.game_type, tier, self.is_double_down, self.points)

    def to_dict(self, include_game=True):
        """Convert pick to dictionary for API responses"""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "picked_team": self.picked_team,
            "locked_spread": self.locked_spread,
            "is_double_down": self.is_double_down,
            "points": self.points,
            "result": self.outcome,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_game:
            data["game"] = self.game.to_dict() if self.game else None
        return data

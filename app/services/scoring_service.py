"""
CFB Pick'em Scoring Service

Settles unscored picks against their final games and keeps users.total_score
in step with the pick ledger. Every pick is committed in its own transaction:
a compare-and-set UPDATE of the pick (only while its points are still NULL)
together with an SQL-side increment of the owner's total. A run that dies
half way leaves no partially applied pick behind, and the next run picks up
whatever is still unscored.
"""

import logging
import threading
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from app import db
from app.models import Game, Pick, User
from app.utils.cache_utils import invalidate_model_cache
from app.utils.game_classification import (
    MANDATORY_DOUBLE_DOWN_TYPES,
    InvalidGameTypeError,
    ScoringError,
    normalize_game_type,
)
from app.utils.performance import PerformanceMonitor
from app.utils.scoring import InvalidPickError, score_pick

logger = logging.getLogger(__name__)

# Bound on the number of ids passed to a single IN (...) clause
ID_BATCH_SIZE = 500


class ScoringInProgressError(ScoringError):
    """Raised when a scoring run is requested while another one is running"""

    def __init__(self, message="A scoring run is already in progress"):
        super().__init__(message)


class ScoringRunError(ScoringError):
    """A database failure stopped a scoring run part way through"""

    def __init__(self, message, updated=0, skipped=0, failed=0, total_points_awarded=0):
        super().__init__(message)
        self.updated = updated
        self.skipped = skipped
        self.failed = failed
        self.total_points_awarded = total_points_awarded

    def progress(self):
        return {
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "total_points_awarded": self.total_points_awarded,
        }


def _batches(ids, size=ID_BATCH_SIZE):
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


class ScoringService:
    """Applies scoring results to the database"""

    def __init__(self):
        self._lock = threading.Lock()
        self.last_run = None

    @property
    def is_running(self):
        return self._lock.locked()

    def _acquire(self):
        if not self._lock.acquire(blocking=False):
            raise ScoringInProgressError()

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def settle_unscored_picks(self, dry_run=False, pick_ids=None):
        """
        Score every unscored pick whose game is final

        Args:
            dry_run: Compute the changes without writing anything
            pick_ids: Optional iterable restricting the run to these picks

        Returns:
            dict with updated, skipped, failed, total_points_awarded,
            errors, changes and dry_run

        Raises:
            ScoringInProgressError: another run holds the lock
            ScoringRunError: a database error stopped the run
        """
        self._acquire()
        try:
            with PerformanceMonitor("settle_unscored_picks", log_threshold=1.0):
                summary = self._settle(dry_run=dry_run, pick_ids=pick_ids)
        finally:
            self._lock.release()

        self.last_run = {
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "dry_run": dry_run,
            "updated": summary["updated"],
            "skipped": summary["skipped"],
            "failed": summary["failed"],
        }
        return summary

    def _settle(self, dry_run=False, pick_ids=None):
        summary = {
            "updated": 0,
            "skipped": 0,
            "failed": 0,
            "total_points_awarded": 0,
            "errors": [],
            "changes": [],
            "dry_run": dry_run,
        }

        query = (
            Pick.query.options(joinedload(Pick.game), joinedload(Pick.user))
            .filter(Pick.points.is_(None))
            .order_by(Pick.id)
        )
        if pick_ids is not None:
            pick_ids = list(pick_ids)
            if not pick_ids:
                return summary
            picks = []
            for batch in _batches(pick_ids):
                picks.extend(query.filter(Pick.id.in_(batch)).all())
            picks.sort(key=lambda p: p.id)
        else:
            picks = query.all()

        # Plain values survive the expiry that follows each commit
        pending = []
        for pick in picks:
            game = pick.game
            if not game.is_final:
                summary["skipped"] += 1
                logger.debug(f"Pick {pick.id}: game {game.id} is not final, skipping")
                continue

            try:
                score = score_pick(pick, game)
            except (InvalidGameTypeError, InvalidPickError) as e:
                summary["failed"] += 1
                summary["errors"].append({"pick_id": pick.id, "error": str(e)})
                logger.error(f"Cannot score pick {pick.id}: {e}")
                continue

            pending.append(
                (pick.id, pick.user_id, score, self._trace(pick, game, score, None))
            )

        for pick_id, user_id, score, change in pending:
            if dry_run:
                summary["updated"] += 1
                summary["total_points_awarded"] += score.points
                summary["changes"].append(change)
                continue

            try:
                applied = self._persist_pick_score(pick_id, user_id, score)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Database error while scoring pick {pick_id}: {e}")
                raise ScoringRunError(
                    f"Scoring stopped at pick {pick_id}: {e}",
                    updated=summary["updated"],
                    skipped=summary["skipped"],
                    failed=summary["failed"],
                    total_points_awarded=summary["total_points_awarded"],
                ) from e

            if not applied:
                summary["skipped"] += 1
                continue

            summary["updated"] += 1
            summary["total_points_awarded"] += score.points
            summary["changes"].append(change)
            logger.debug(
                f"Pick {pick_id}: {score.result} ({score.points:+d}), "
                f"spread winner {score.spread_winner}"
            )

        if summary["updated"] and not dry_run:
            invalidate_model_cache("Pick")

        logger.info(
            f"{'Dry run' if dry_run else 'Scoring run'} complete: "
            f"{summary['updated']} updated, {summary['skipped']} skipped, "
            f"{summary['failed']} failed, "
            f"{summary['total_points_awarded']:+d} points"
        )
        return summary

    def _persist_pick_score(self, pick_id, user_id, score):
        """
        Write one pick's score and the matching total increment atomically

        Returns False without writing when the pick was scored by someone else
        in the meantime.
        """
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Pick)
            .where(Pick.id == pick_id, Pick.points.is_(None))
            .values(points=score.points, result=score.result, scored_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            logger.warning(f"Pick {pick_id} was already scored, skipping")
            return False

        db.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_score=User.total_score + score.points)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return True

    @staticmethod
    def _trace(pick, game, score, old_points):
        new_points = score.points if score is not None else None
        return {
            "pick_id": pick.id,
            "user_id": pick.user_id,
            "user": pick.user.display_name if pick.user else None,
            "game_id": game.id,
            "matchup": game.matchup,
            "game_type": score.game_type if score is not None else game.game_type,
            "tier": score.tier if score is not None else None,
            "picked_team": pick.picked_team,
            "locked_spread": pick.locked_spread,
            "is_double_down": bool(pick.is_double_down),
            "final_score": game.final_score,
            "spread_winner": score.spread_winner if score is not None else None,
            "result": score.result if score is not None else None,
            "old_points": old_points,
            "new_points": new_points,
            "difference": (new_points or 0) - (old_points or 0),
        }

    # ------------------------------------------------------------------
    # Reset and re-settle
    # ------------------------------------------------------------------

    def _scoped_scored_picks(self, game_types=None, season=None, week=None):
        query = (
            Pick.query.join(Game)
            .options(joinedload(Pick.game), joinedload(Pick.user))
            .filter(Pick.points.isnot(None))
        )
        if season is not None:
            query = query.filter(Game.season == season)
        if week is not None:
            query = query.filter(Game.week == week)
        picks = query.order_by(Pick.id).all()

        if game_types:
            wanted = {normalize_game_type(t) for t in game_types}
            picks = [p for p in picks if self._normalized_type(p.game) in wanted]
        return picks

    @staticmethod
    def _normalized_type(game):
        try:
            return normalize_game_type(game.game_type)
        except InvalidGameTypeError:
            return None

    def reset_and_resettle(self, game_types=None, season=None, week=None, dry_run=False):
        """
        Clear the scores of picks in scope and score them again

        Used after a rules change or a bad classification. Scope is the
        intersection of the given game types, season and week; with no
        filters every scored pick is reset and user totals are zeroed.

        Returns:
            dict with the scope, settlement summary, per-user before/after
            totals and a per-pick trace of old and new points
        """
        self._acquire()
        try:
            with PerformanceMonitor("reset_and_resettle", log_threshold=1.0):
                return self._reset_and_resettle(game_types, season, week, dry_run)
        finally:
            self._lock.release()

    def _reset_and_resettle(self, game_types, season, week, dry_run):
        full_reset = not game_types and season is None and week is None
        picks = self._scoped_scored_picks(game_types, season, week)

        old_points = {p.id: p.points for p in picks}
        old_by_user = {}
        for pick in picks:
            old_by_user[pick.user_id] = old_by_user.get(pick.user_id, 0) + pick.points

        users = {u.id: u for u in User.query.all()}
        before = {user_id: user.total_score or 0 for user_id, user in users.items()}
        names = {user_id: user.display_name for user_id, user in users.items()}

        if dry_run:
            settlement = {
                "updated": 0,
                "skipped": 0,
                "failed": 0,
                "total_points_awarded": 0,
                "errors": [],
                "dry_run": True,
            }
            trace = []
            for pick in picks:
                try:
                    score = score_pick(pick, pick.game)
                except (InvalidGameTypeError, InvalidPickError) as e:
                    settlement["failed"] += 1
                    settlement["errors"].append({"pick_id": pick.id, "error": str(e)})
                    score = None
                else:
                    settlement["updated"] += 1
                    settlement["total_points_awarded"] += score.points
                trace.append(self._trace(pick, pick.game, score, pick.points))

            after = dict(before)
            if full_reset:
                after = {user_id: 0 for user_id in before}
            else:
                for user_id, points in old_by_user.items():
                    after[user_id] = after.get(user_id, 0) - points
            for entry in trace:
                if entry["new_points"] is not None:
                    after[entry["user_id"]] = after.get(entry["user_id"], 0) + entry["new_points"]
        else:
            pick_ids = list(old_points)
            try:
                for batch in _batches(pick_ids):
                    db.session.execute(
                        update(Pick)
                        .where(Pick.id.in_(batch))
                        .values(points=None, result=None, scored_at=None)
                        .execution_options(synchronize_session=False)
                    )
                if full_reset:
                    db.session.execute(
                        update(User)
                        .values(total_score=0)
                        .execution_options(synchronize_session=False)
                    )
                else:
                    for user_id, points in old_by_user.items():
                        db.session.execute(
                            update(User)
                            .where(User.id == user_id)
                            .values(total_score=User.total_score - points)
                            .execution_options(synchronize_session=False)
                        )
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error resetting {len(pick_ids)} picks: {e}")
                raise ScoringRunError(f"Reset failed, nothing was changed: {e}") from e

            logger.info(
                f"Reset {len(pick_ids)} picks "
                f"({'all users zeroed' if full_reset else f'{len(old_by_user)} users adjusted'})"
            )

            settlement = self._settle(dry_run=False, pick_ids=pick_ids)
            new_by_pick = {c["pick_id"]: c for c in settlement.pop("changes")}

            resettled = []
            for batch in _batches(pick_ids):
                resettled.extend(
                    Pick.query.options(joinedload(Pick.game), joinedload(Pick.user))
                    .filter(Pick.id.in_(batch))
                    .all()
                )
            resettled.sort(key=lambda p: p.id)

            trace = []
            for pick in resettled:
                change = new_by_pick.get(pick.id)
                if change is None:
                    change = self._trace(pick, pick.game, None, None)
                change["old_points"] = old_points[pick.id]
                change["difference"] = (change["new_points"] or 0) - old_points[pick.id]
                trace.append(change)

            after = {
                user.id: user.total_score or 0 for user in User.query.all()
            }

        user_updates = [
            {
                "user_id": user_id,
                "name": names.get(user_id),
                "before": before.get(user_id, 0),
                "after": after.get(user_id, 0),
                "delta": after.get(user_id, 0) - before.get(user_id, 0),
            }
            for user_id in sorted(set(before) | set(after))
            if full_reset or user_id in old_by_user
        ]
        user_updates.sort(key=lambda u: abs(u["delta"]), reverse=True)

        return {
            "dry_run": dry_run,
            "scope": {
                "game_types": list(game_types) if game_types else None,
                "season": season,
                "week": week,
                "full_reset": full_reset,
            },
            "picks_reset": len(picks),
            "changed_picks": sum(1 for entry in trace if entry["difference"] != 0),
            "settlement": settlement,
            "user_updates": user_updates,
            "pick_details": trace,
        }

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def diagnose(self, game_types=None, season=None):
        """Recompute scored picks in scope and report stored points that are wrong"""
        picks = self._scoped_scored_picks(game_types, season)

        by_tier = {}
        incorrect = []
        errors = []
        for pick in picks:
            game = pick.game
            if not game.is_final:
                errors.append(
                    {"pick_id": pick.id, "error": f"Scored but game {game.id} is not final"}
                )
                continue
            try:
                score = score_pick(pick, game)
            except (InvalidGameTypeError, InvalidPickError) as e:
                errors.append({"pick_id": pick.id, "error": str(e)})
                continue

            tier_key = score.tier or "none"
            bucket = by_tier.setdefault(tier_key, {"total": 0, "incorrect": 0})
            bucket["total"] += 1

            points_wrong = pick.points != score.points
            result_wrong = pick.result is not None and pick.result != score.result
            if points_wrong or result_wrong:
                bucket["incorrect"] += 1
                incorrect.append(self._trace(pick, game, score, pick.points))

        logger.info(
            f"Diagnosed {len(picks)} scored picks: {len(incorrect)} incorrect, "
            f"{len(errors)} could not be recomputed"
        )
        return {
            "total_picks": len(picks),
            "issues_found": len(incorrect),
            "by_tier": by_tier,
            "incorrect_picks": incorrect,
            "errors": errors,
        }

    def scoring_status(self):
        unscored = Pick.query.filter(Pick.points.is_(None)).count()
        ready = (
            Pick.query.join(Game)
            .filter(Pick.points.is_(None), *Game.final_filter())
            .count()
        )
        return {
            "unscored_picks": unscored,
            "ready_to_score": ready,
            "final_games": Game.query.filter(*Game.final_filter()).count(),
            "games_missing_scores": len(Game.get_completed_missing_scores()),
            "scoring_in_progress": self.is_running,
            "last_run": self.last_run,
        }

    # ------------------------------------------------------------------
    # Mandatory double downs
    # ------------------------------------------------------------------

    def enforce_mandatory_double_downs(self, dry_run=False):
        """
        Flag double down on every pick of a game type that requires it

        Picks that are already scored keep their points; they are listed in
        needs_resettlement so an admin can run reset_and_resettle on them.
        """
        self._acquire()
        try:
            picks = (
                Pick.query.options(joinedload(Pick.game))
                .filter(Pick.is_double_down.is_(False))
                .order_by(Pick.id)
                .all()
            )
            flagged = [
                p for p in picks
                if self._normalized_type(p.game) in MANDATORY_DOUBLE_DOWN_TYPES
            ]
            needs_resettlement = [p.id for p in flagged if p.points is not None]

            if flagged and not dry_run:
                try:
                    for pick in flagged:
                        pick.is_double_down = True
                    db.session.commit()
                except SQLAlchemyError as e:
                    db.session.rollback()
                    logger.error(f"Error enforcing mandatory double downs: {e}")
                    raise

                invalidate_model_cache("Pick")
                logger.info(f"Set double down on {len(flagged)} picks")

            return {
                "dry_run": dry_run,
                "picks_updated": len(flagged),
                "pick_ids": [p.id for p in flagged],
                "needs_resettlement": needs_resettlement,
            }
        finally:
            self._lock.release()


scoring_service = ScoringService()

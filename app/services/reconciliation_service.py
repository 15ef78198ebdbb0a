"""
Score reconciliation for CFB Pick'em

users.total_score is a cache of the sum of a user's scored pick points.
audit() compares the two without touching anything; resync() rebuilds every
cached total from the pick ledger.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import Pick, User
from app.services.scoring_service import scoring_service
from app.utils.cache_utils import invalidate_model_cache
from app.utils.performance import timer

logger = logging.getLogger(__name__)


class ReconciliationService:
    def _ledger_totals(self):
        """{user_id: (sum of scored points, number of scored picks)}"""
        rows = (
            db.session.query(
                Pick.user_id,
                db.func.coalesce(db.func.sum(Pick.points), 0),
                db.func.count(Pick.id),
            )
            .filter(Pick.points.isnot(None))
            .group_by(Pick.user_id)
            .all()
        )
        return {user_id: (int(total), count) for user_id, total, count in rows}

    @timer
    def audit(self):
        """
        Compare every user's stored total with the pick ledger

        Returns:
            dict with per-user rows sorted by the size of the discrepancy
            and a summary
        """
        ledger = self._ledger_totals()

        users = []
        for user in User.query.order_by(User.id).all():
            calculated, scored_picks = ledger.get(user.id, (0, 0))
            stored = user.total_score or 0
            discrepancy = stored - calculated
            users.append(
                {
                    "id": user.id,
                    "name": user.display_name,
                    "email": user.email,
                    "stored_total": stored,
                    "calculated_total": calculated,
                    "discrepancy": discrepancy,
                    "has_discrepancy": discrepancy != 0,
                    "total_picks": scored_picks,
                }
            )

        users.sort(key=lambda u: abs(u["discrepancy"]), reverse=True)
        with_discrepancies = [u for u in users if u["has_discrepancy"]]

        summary = {
            "total_users": len(users),
            "users_with_discrepancies": len(with_discrepancies),
            "total_discrepancy": sum(abs(u["discrepancy"]) for u in with_discrepancies),
        }
        if with_discrepancies:
            logger.warning(
                f"Score audit: {summary['users_with_discrepancies']} of "
                f"{summary['total_users']} users out of sync "
                f"(total discrepancy {summary['total_discrepancy']})"
            )
        else:
            logger.info(f"Score audit: all {summary['total_users']} users in sync")

        return {"users": users, "summary": summary}

    @timer
    def resync(self, dry_run=False):
        """
        Set every user's total_score to the ledger sum in one transaction

        Holds the scoring lock for the whole call, so a scheduled settle run
        cannot land between reading the ledger and writing the totals. The
        write itself is a single UPDATE computing each sum in SQL, which keeps
        it correct against picks scored by another process. Every user is
        written, not only the ones that differ, so running it twice leaves the
        same state.

        Raises:
            ScoringInProgressError: a scoring run is active
        """
        scoring_service._acquire()
        try:
            return self._resync(dry_run)
        finally:
            scoring_service._lock.release()

    def _resync(self, dry_run):
        ledger = self._ledger_totals()
        users = User.query.order_by(User.id).all()

        corrections = []
        for user in users:
            calculated = ledger.get(user.id, (0, 0))[0]
            stored = user.total_score or 0
            if stored != calculated:
                corrections.append(
                    {
                        "user_id": user.id,
                        "name": user.display_name,
                        "old_total": stored,
                        "new_total": calculated,
                        "difference": calculated - stored,
                    }
                )

        if not dry_run:
            ledger_sum = (
                select(func.coalesce(func.sum(Pick.points), 0))
                .where(Pick.user_id == User.id, Pick.points.isnot(None))
                .scalar_subquery()
            )
            try:
                db.session.execute(
                    update(User)
                    .values(total_score=ledger_sum)
                    .execution_options(synchronize_session=False)
                )
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error resyncing user totals: {e}")
                raise
            db.session.expire_all()

            invalidate_model_cache("User")
            logger.info(
                f"Resynced {len(users)} user totals, {len(corrections)} corrected"
            )

        return {
            "dry_run": dry_run,
            "updated_users": 0 if dry_run else len(users),
            "corrected_users": len(corrections),
            "corrections": corrections,
        }


reconciliation_service = ReconciliationService()

"""
Migration: Add result and scored_at columns to picks and backfill result tags

Older rows only stored points, some of them under the old rule where a push
scored like a loss. The outcome is tagged only when the points identify it
under either rule; the rest (0 points on a regular pick is a loss or a push)
are left NULL and reported as unknown.
"""

from app import create_app, db
from app.models import Pick
from app.utils.game_classification import InvalidGameTypeError
from app.utils.scoring import PickResult, infer_result

COLUMNS = (
    ("result", "VARCHAR(10)"),
    ("scored_at", "TIMESTAMP"),
)


def _add_column(name, column_type):
    try:
        db.session.execute(db.text(f"ALTER TABLE picks ADD COLUMN {name} {column_type}"))
        db.session.commit()
        print(f"✓ {name} column added")
    except Exception as e:
        db.session.rollback()
        if "duplicate column" in str(e).lower() or "already exists" in str(e).lower():
            print(f"✓ {name} column already exists")
        else:
            raise e


def upgrade():
    """Add the columns and tag scored picks whose outcome can be inferred"""
    print("Adding result columns to picks table...")
    for name, column_type in COLUMNS:
        _add_column(name, column_type)

    print("Backfilling result tags...")
    picks = Pick.query.filter(Pick.points.isnot(None), Pick.result.is_(None)).all()

    tagged = 0
    unknown = 0
    for pick in picks:
        try:
            tier = pick.game.classification.tier
        except InvalidGameTypeError:
            unknown += 1
            continue

        result = infer_result(pick.game.game_type, tier, pick.is_double_down, pick.points)
        if result in PickResult.SETTLED:
            pick.result = result
            tagged += 1
        else:
            unknown += 1

        if tagged and tagged % 100 == 0:
            db.session.commit()
            print(f"  Tagged {tagged} picks...")

    db.session.commit()
    print(f"✓ Tagged {tagged} picks, {unknown} left as unknown")
    print("Migration completed successfully!")


def downgrade():
    """Remove the result columns"""
    print("Removing result columns from picks table...")

    try:
        for name, _ in COLUMNS:
            db.session.execute(db.text(f"ALTER TABLE picks DROP COLUMN {name}"))
        db.session.commit()
        print("✓ result columns removed")
    except Exception as e:
        print(f"Error removing columns: {e}")
        db.session.rollback()
        raise e


if __name__ == "__main__":
    print("=" * 60)
    print("Running Pick Result Migration")
    print("=" * 60)
    app = create_app()
    with app.app_context():
        upgrade()

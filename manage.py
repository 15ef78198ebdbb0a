#!/usr/bin/env python3
"""
CFB Pick'em Management CLI

Command-line access to scoring, score reconciliation, season archiving and
database management.
"""

import logging
import os
import sys

# Jobs run in the foreground from the CLI
os.environ.setdefault("SCHEDULER_ENABLED", "False")

import click  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from flask_migrate import downgrade, migrate, upgrade  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import IntegrityError, SQLAlchemyError  # noqa: E402

from app import create_app, db  # noqa: E402
from app.models import (  # noqa: E402
    Game,
    HistoricalStats,
    Pick,
    SeasonAlreadyArchivedError,
    User,
)
from app.services.reconciliation_service import reconciliation_service  # noqa: E402
from app.services.scoring_service import (  # noqa: E402
    ScoringInProgressError,
    ScoringRunError,
    scoring_service,
)
from app.utils.game_classification import GameType, InvalidGameTypeError  # noqa: E402

app = create_app()


@click.group()
def cli():
    """CFB Pick'em Management CLI"""
    pass


def _fail(message):
    click.echo(f"❌ {message}")
    sys.exit(1)


# Scoring Commands
@cli.group()
def scoring():
    """Pick scoring commands"""
    pass


@scoring.command()
@click.option("--dry-run", is_flag=True, help="Show what would be scored")
@with_appcontext
def settle(dry_run):
    """Score every unscored pick whose game is final"""
    try:
        summary = scoring_service.settle_unscored_picks(dry_run=dry_run)
    except ScoringInProgressError as e:
        _fail(str(e))
    except ScoringRunError as e:
        _fail(f"{e} (progress: {e.progress()})")

    if dry_run:
        click.echo("🔍 DRY RUN - no changes written")
        for change in summary["changes"]:
            click.echo(
                f"  Pick {change['pick_id']} {change['user']}: {change['picked_team']} "
                f"({change['locked_spread']:+g}) in {change['matchup']} -> "
                f"{change['result']} {change['new_points']:+d}"
            )

    click.echo(
        f"✅ {summary['updated']} scored, {summary['skipped']} skipped, "
        f"{summary['failed']} failed, {summary['total_points_awarded']:+d} points"
    )
    for error in summary["errors"]:
        click.echo(f"  ⚠️  Pick {error['pick_id']}: {error['error']}")


@scoring.command()
@click.option(
    "--game-type",
    "game_types",
    multiple=True,
    type=click.Choice(GameType.ALL),
    help="Only reset picks on games of this type (repeatable)",
)
@click.option("--season", type=int, help="Only reset picks from this season")
@click.option("--week", type=int, help="Only reset picks from this week")
@click.option("--dry-run", is_flag=True, help="Show the changes without writing them")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@with_appcontext
def reset(game_types, season, week, dry_run, yes):
    """Clear scored picks in scope and score them again"""
    full_reset = not game_types and season is None and week is None
    if not dry_run and not yes:
        scope = "ALL scored picks" if full_reset else "the selected picks"
        click.confirm(f"This will reset and re-score {scope}. Continue?", abort=True)

    try:
        report = scoring_service.reset_and_resettle(
            game_types=list(game_types) or None,
            season=season,
            week=week,
            dry_run=dry_run,
        )
    except ScoringInProgressError as e:
        _fail(str(e))
    except ScoringRunError as e:
        _fail(f"{e} (progress: {e.progress()})")

    if dry_run:
        click.echo("🔍 DRY RUN - no changes written")

    for entry in report["pick_details"]:
        if entry["difference"] == 0:
            continue
        click.echo(
            f"  Pick {entry['pick_id']} {entry['user']}: {entry['matchup']} "
            f"[{entry['tier'] or entry['game_type']}] "
            f"{entry['picked_team']} ({entry['locked_spread']:+g}), "
            f"final {entry['final_score']}: {entry['old_points']} -> {entry['new_points']}"
        )

    click.echo("\nUser totals:")
    for update in report["user_updates"]:
        if update["delta"]:
            click.echo(
                f"  {update['name']}: {update['before']} -> {update['after']} "
                f"({update['delta']:+d})"
            )

    click.echo(
        f"✅ {report['picks_reset']} picks reset, {report['changed_picks']} changed, "
        f"{report['settlement']['failed']} could not be scored"
    )


@scoring.command()
@click.option("--game-type", "game_types", multiple=True, type=click.Choice(GameType.ALL))
@click.option("--season", type=int)
@with_appcontext
def diagnose(game_types, season):
    """Report scored picks whose stored points are wrong"""
    report = scoring_service.diagnose(game_types=list(game_types) or None, season=season)

    click.echo(f"Checked {report['total_picks']} scored picks")
    for tier, counts in sorted(report["by_tier"].items()):
        click.echo(f"  {tier}: {counts['incorrect']}/{counts['total']} incorrect")

    for entry in report["incorrect_picks"]:
        click.echo(
            f"  ❌ Pick {entry['pick_id']} {entry['user']}: {entry['matchup']} "
            f"stored {entry['old_points']}, should be {entry['new_points']}"
        )
    for error in report["errors"]:
        click.echo(f"  ⚠️  Pick {error['pick_id']}: {error['error']}")

    if report["issues_found"]:
        click.echo("Run 'scoring reset' with the same filters to fix them.")
    else:
        click.echo("✅ All scored picks are correct")


@scoring.command("status")
@with_appcontext
def scoring_status():
    """Show scoring queue counts"""
    status = scoring_service.scoring_status()
    click.echo(f"Unscored picks:        {status['unscored_picks']}")
    click.echo(f"Ready to score:        {status['ready_to_score']}")
    click.echo(f"Final games:           {status['final_games']}")
    click.echo(f"Games missing scores:  {status['games_missing_scores']}")


@scoring.command("double-downs")
@click.option("--dry-run", is_flag=True)
@with_appcontext
def double_downs(dry_run):
    """Set double down on picks of games that require it"""
    try:
        result = scoring_service.enforce_mandatory_double_downs(dry_run=dry_run)
    except (ScoringInProgressError, SQLAlchemyError) as e:
        _fail(f"Error enforcing double downs: {e}")

    verb = "Would update" if dry_run else "Updated"
    click.echo(f"✅ {verb} {result['picks_updated']} picks")
    if result["needs_resettlement"]:
        click.echo(
            f"⚠️  {len(result['needs_resettlement'])} of them are already scored; "
            "run 'scoring reset' to apply the double down"
        )


# Score Reconciliation Commands
@cli.group()
def scores():
    """Cached user total commands"""
    pass


@scores.command()
@with_appcontext
def audit():
    """Compare stored user totals with the pick ledger"""
    report = reconciliation_service.audit()
    summary = report["summary"]

    for row in report["users"]:
        marker = "❌" if row["has_discrepancy"] else "✅"
        click.echo(
            f"  {marker} {row['name']:<24} stored {row['stored_total']:>5}  "
            f"calculated {row['calculated_total']:>5}  ({row['discrepancy']:+d})"
        )

    click.echo(
        f"\n{summary['users_with_discrepancies']}/{summary['total_users']} users out "
        f"of sync, total discrepancy {summary['total_discrepancy']}"
    )


@scores.command()
@click.option("--dry-run", is_flag=True)
@with_appcontext
def resync(dry_run):
    """Rebuild every user's total from their scored picks"""
    try:
        result = reconciliation_service.resync(dry_run=dry_run)
    except ScoringInProgressError as e:
        _fail(str(e))
    except SQLAlchemyError as e:
        _fail(f"Database error during resync: {e}")

    for correction in result["corrections"]:
        click.echo(
            f"  {correction['name']}: {correction['old_total']} -> "
            f"{correction['new_total']} ({correction['difference']:+d})"
        )
    verb = "Would correct" if dry_run else "Corrected"
    click.echo(f"✅ {verb} {result['corrected_users']} users")


# Season Commands
@cli.group()
def season():
    """Season archive commands"""
    pass


@season.command()
@click.argument("year", type=int)
@with_appcontext
def archive(year):
    """Snapshot final standings of a finished season"""
    unscored = (
        Pick.query.join(Game)
        .filter(Game.season == year, Pick.points.is_(None))
        .count()
    )
    if unscored:
        click.confirm(
            f"Season {year} still has {unscored} unscored picks. Archive anyway?",
            abort=True,
        )

    try:
        rows = HistoricalStats.archive_season(year)
    except SeasonAlreadyArchivedError as e:
        _fail(str(e))
    except SQLAlchemyError as e:
        logging.error(f"Season archive failed - SQL error: {e}")
        _fail(f"Database error archiving season: {e}")

    for row in rows:
        click.echo(f"  {row.rank:>2}. {row.user_name:<24} {row.final_score:>5}")
    click.echo(f"✅ Archived {len(rows)} users for season {year}")


@season.command("list")
@with_appcontext
def list_seasons():
    """List archived and archivable seasons"""
    summaries = HistoricalStats.get_season_summaries()
    if summaries:
        click.echo("Archived seasons:")
        for s in summaries:
            click.echo(
                f"  {s['season']}: 🏆 {s['champion']} ({s['champion_score']} points, "
                f"{s['total_users']} players)"
            )

    archivable = HistoricalStats.get_archivable_seasons()
    if archivable:
        click.echo(f"Not archived yet: {', '.join(str(s) for s in archivable)}")

    if not summaries and not archivable:
        click.echo("No seasons found.")


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command()
@click.argument("email")
@click.option("--name", help="Display name")
@with_appcontext
def create_admin(email, name):
    """Create an admin user, or promote an existing one"""
    try:
        existing = User.query.filter_by(email=email).first()
        if existing:
            existing.is_admin = True
            db.session.commit()
            click.echo(f"✅ Promoted '{existing.display_name}' ({email}) to admin")
            return

        db.session.add(User(email=email, name=name, is_admin=True))
        db.session.commit()
        click.echo(f"✅ Created admin user ({email})")

    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ User {email} already exists!")
        logging.error(f"Admin creation failed - integrity error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating user: {str(e)}")
        logging.error(f"Admin creation failed - SQL error: {e}")


@user.command("list")
@with_appcontext
def list_users():
    """List all users with their cached totals"""
    users = User.query.order_by(User.total_score.desc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("Users:")
    for u in users:
        role = "👑 Admin" if u.is_admin else "👤 User"
        status = "🟢" if u.is_active else "🔴"
        click.echo(f"  {status} {u.display_name} ({u.email}) - {role} - {u.total_score} points")


# Database Commands
@cli.group()
def db_cmd():
    """Database management commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command("reset")
@with_appcontext
def reset_db():
    """Drop and recreate all tables"""
    if click.confirm("This will delete ALL data. Are you sure?"):
        try:
            db.drop_all()
            db.create_all()
            click.echo("✅ Database reset successfully!")
        except SQLAlchemyError as e:
            click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    try:
        if os.path.exists("migrations/alembic.ini"):
            click.echo("❌ Migrations repository already exists!")
            return

        from flask_migrate import init as flask_migrate_init

        flask_migrate_init()
        click.echo("✅ Migrations repository initialized!")
    except Exception as e:
        click.echo(f"❌ Error initializing migrations: {str(e)}")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    try:
        migrate(message=message)
        click.echo(f"✅ Migration created: {message}")
    except Exception as e:
        click.echo(f"❌ Error creating migration: {str(e)}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    try:
        upgrade(revision=revision)
        click.echo(f"✅ Migrations applied to {revision}")
    except Exception as e:
        click.echo(f"❌ Error applying migrations: {str(e)}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    try:
        downgrade(revision=revision)
        click.echo(f"✅ Rolled back to {revision}")
    except Exception as e:
        click.echo(f"❌ Error rolling back: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 CFB Pick'em Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    game_count = Game.query.count()
    final_count = Game.query.filter(*Game.final_filter()).count()
    click.echo(f"🏈 Games: {final_count}/{game_count} final")

    invalid = sum(1 for g in Game.query.all() if not _known_type(g))
    if invalid:
        click.echo(f"⚠️  Games with unrecognized type: {invalid}")

    queue = scoring_service.scoring_status()
    click.echo(
        f"🎯 Picks: {queue['unscored_picks']} unscored, "
        f"{queue['ready_to_score']} ready to score"
    )
    if queue["games_missing_scores"]:
        click.echo(f"⚠️  Completed games missing scores: {queue['games_missing_scores']}")

    summary = reconciliation_service.audit()["summary"]
    if summary["users_with_discrepancies"]:
        click.echo(
            f"⚠️  {summary['users_with_discrepancies']} users out of sync "
            "(run 'scores resync')"
        )
    else:
        click.echo("✅ User totals in sync")


def _known_type(game):
    try:
        game.classification
    except InvalidGameTypeError:
        return False
    return True


if __name__ == "__main__":
    with app.app_context():
        cli()

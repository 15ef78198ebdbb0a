from datetime import datetime, timezone

from flask import abort, jsonify, request

from app import db, limiter
from app.models import Game, HistoricalStats, Pick, User
from app.routes.api import bp
from app.utils.cache_utils import cached_route


@bp.route("/leaderboard")
@cached_route(timeout=300, key_prefix="leaderboard")  # Cache for 5 minutes
def leaderboard():
    """Standings computed from the pick ledger"""
    season = request.args.get("season", type=int)
    return {"season": season, "leaderboard": User.get_leaderboard(season=season)}


@bp.route("/historical-stats")
@cached_route(timeout=3600, key_prefix="historical_stats")  # Cache for 1 hour
def historical_stats():
    """Archived season standings, or a summary of every archived season"""
    season = request.args.get("season", type=int)
    if season is None:
        return {"seasons": HistoricalStats.get_season_summaries()}

    rows = HistoricalStats.get_season(season)
    if not rows:
        return {"error": f"Season {season} has not been archived"}, 404
    return {"season": season, "standings": [row.to_dict() for row in rows]}


@bp.route("/users/<int:user_id>/weekly-picks")
@cached_route(timeout=300, key_prefix="weekly_picks")
def weekly_picks(user_id):
    """A user's picks for one week with their results"""
    user = db.get_or_404(User, user_id)
    season = request.args.get("season", type=int)
    week = request.args.get("week", type=int)
    if season is None or week is None:
        abort(400, description="season and week are required")

    picks = (
        Pick.query.join(Game)
        .filter(Pick.user_id == user.id, Game.season == season, Game.week == week)
        .order_by(Game.start_time)
        .all()
    )
    scored = [p for p in picks if p.points is not None]

    return {
        "user": user.to_dict(),
        "season": season,
        "week": week,
        "picks": [pick.to_dict() for pick in picks],
        "week_points": sum(p.points for p in scored),
        "scored_picks": len(scored),
    }


@bp.route("/games/<int:game_id>")
@cached_route(timeout=300, key_prefix="game_detail")
def game_detail(game_id):
    game = db.get_or_404(Game, game_id)
    data = game.to_dict()
    data["picks_count"] = game.picks.count()
    data["scored_picks"] = game.picks.filter(Pick.points.isnot(None)).count()
    return data


@bp.route("/health")
@limiter.exempt
def health():
    """Health check endpoint - exempt from rate limiting for monitoring systems"""
    return jsonify(
        {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
    )

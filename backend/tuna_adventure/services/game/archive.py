import json
from typing import Any, Dict

from flask import current_app

from tuna_adventure import db
from tuna_adventure.errors import Conflict
from tuna_adventure.models import SessionArchive, SessionState, Team, PHASE_ENDED
from tuna_adventure.services.game.leaderboard import _ranked_query


def archive_session(cache) -> Dict[str, Any]:
    """Store the final standings of an ended session.

    Standings come from the database; the cache is only consulted to report
    teams whose cached progress disagrees with it.
    """
    state = SessionState.get()
    if state.phase != PHASE_ENDED:
        db.session.rollback()
        raise Conflict('Can only archive when game has ended')

    standings = []
    mismatched = []
    for rank, team in enumerate(_ranked_query().all(), start=1):
        decision_count = team.decisions.count()
        standings.append({
            'rank': rank,
            'team_id': team.id,
            'team_name': team.name,
            'total_score': team.total_score,
            'current_position': team.current_position,
            'decisions': decision_count,
        })
        cached = cache.get_team(team.id)
        if cached and (cached['total_score'], cached['current_position']) != (team.total_score, team.current_position):
            mismatched.append(team.id)

    archive = SessionArchive(
        session_started_at=state.session_started_at,
        summary=json.dumps({'standings': standings, 'cache_mismatches': mismatched}),
    )
    db.session.add(archive)
    db.session.commit()
    current_app.logger.info(
        f"[archive] id={archive.id} teams={len(standings)} cache_mismatches={len(mismatched)}"
    )
    if mismatched:
        # Cache defers to the database
        service = current_app.extensions['tuna_adventure'].sessions
        service.rebuild_cache()
    return archive.to_dict()

from typing import Any, Dict, Optional

from flask import current_app

from tuna_adventure import db
from tuna_adventure.errors import ValidationError
from tuna_adventure.models import GameSetting

TIME_LIMIT_KEY = 'answer_time_limit'
MIN_TIME_LIMIT_SEC = 60
MAX_TIME_LIMIT_SEC = 3600

DEFAULT_SETTINGS = {
    TIME_LIMIT_KEY: 'Seconds each team has to submit a decision',
}


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    row = db.session.get(GameSetting, key)
    return row.value if row else default


def get_time_limit() -> int:
    fallback = int(current_app.config.get('ANSWER_TIME_LIMIT_SEC', 900))
    raw = get_setting(TIME_LIMIT_KEY)
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        current_app.logger.warning(f"[settings] invalid {TIME_LIMIT_KEY}={raw!r}, using {fallback}")
        return fallback


def get_settings() -> Dict[str, Any]:
    return {row.key: row.to_dict() for row in GameSetting.query.order_by(GameSetting.key).all()}


def _validate(key: str, value) -> str:
    if key == TIME_LIMIT_KEY:
        try:
            seconds = int(value)
        except (TypeError, ValueError):
            raise ValidationError('Time limit must be a whole number of seconds')
        if not MIN_TIME_LIMIT_SEC <= seconds <= MAX_TIME_LIMIT_SEC:
            raise ValidationError(
                f'Time limit must be between {MIN_TIME_LIMIT_SEC} and {MAX_TIME_LIMIT_SEC} seconds'
            )
        return str(seconds)
    return str(value)


def update_settings(settings, updated_by: str = 'admin') -> Dict[str, Any]:
    if not isinstance(settings, dict) or not settings:
        raise ValidationError('Invalid settings format')
    # All values are validated before any row is written
    cleaned = {str(k): _validate(str(k), v) for k, v in settings.items()}
    for key, value in cleaned.items():
        row = db.session.get(GameSetting, key)
        if row is None:
            row = GameSetting(key=key, description=DEFAULT_SETTINGS.get(key))
        row.value = value
        row.updated_by = updated_by
        db.session.add(row)
    db.session.commit()
    current_app.logger.info(f"[settings] updated keys={sorted(cleaned)} by={updated_by}")
    return get_settings()

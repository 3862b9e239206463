from functools import wraps

from flask_login import current_user

from tuna_adventure import db
from tuna_adventure.errors import Forbidden, Unauthorized
from tuna_adventure.models import Admin, Team


def load_principal(user_id):
    """Flask-Login user loader for the "admin:<id>" / "team:<id>" session ids."""
    kind, _, raw_id = str(user_id).partition(':')
    try:
        pk = int(raw_id)
    except ValueError:
        return None
    if kind == 'admin':
        return db.session.get(Admin, pk)
    if kind == 'team':
        return db.session.get(Team, pk)
    return None


def is_admin(principal=None) -> bool:
    principal = principal if principal is not None else current_user
    return bool(principal and principal.is_authenticated and getattr(principal, 'is_admin', False))


def current_team():
    if current_user.is_authenticated and isinstance(current_user._get_current_object(), Team):
        return current_user._get_current_object()
    return None


def team_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            raise Unauthorized('Please log in')
        if current_team() is None:
            raise Forbidden('Team access required')
        return view(*args, **kwargs)
    return wrapped


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            raise Unauthorized('Please log in')
        if not is_admin():
            raise Forbidden('Admin access required')
        return view(*args, **kwargs)
    return wrapped

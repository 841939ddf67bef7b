from functools import wraps
from flask import abort
from flask_login import current_user
from app.utils.roles import has_permission


def permission_required(*actions):
    """
    Decorator untuk membatasi akses berdasarkan capability role.
    Lolos jika role user memiliki salah satu action yang disebut.
    Penggunaan: @permission_required('edit_agenda', 'edit_own_agenda')
    """
    def wrapper(fn):
        @wraps(fn)
        def decorated_view(*args, **kwargs):
            if not current_user.is_authenticated:
                return abort(401)
            if not any(has_permission(current_user.role, action) for action in actions):
                return abort(403)  # Forbidden
            return fn(*args, **kwargs)
        return decorated_view
    return wrapper

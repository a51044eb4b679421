from functools import wraps
from flask import request

from .error_utils import create_error_response

# Set by the upstream gateway after it has authenticated the caller
USER_ID_HEADER = 'X-User-Id'

def user_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = (request.headers.get(USER_ID_HEADER) or '').strip()
        if not user_id:
            return create_error_response("USER_MISSING", status_code=401)
        kwargs['user_id'] = user_id
        return f(*args, **kwargs)
    return decorated

from functools import wraps

from flask import jsonify, session


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'status': 'error', 'message': 'You need to be logged in to do this.'}), 401
        return f(*args, **kwargs)
    return decorated_function

# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-Actor-Id"
MAX_ACTOR_LENGTH = 128


def require_actor(f):
    """
    Require the acting user's identity on mutating requests.

    Authentication happens upstream; this service only records who did what.
    Sets g.actor_id to the trimmed X-Actor-Id header value.

    Returns 400 if the header is missing, blank or too long.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor:
            return jsonify({"error": f"{ACTOR_HEADER} header required"}), 400
        if len(actor) > MAX_ACTOR_LENGTH:
            return jsonify({"error": f"{ACTOR_HEADER} exceeds max length {MAX_ACTOR_LENGTH}"}), 400

        g.actor_id = actor
        return f(*args, **kwargs)

    return decorated_function

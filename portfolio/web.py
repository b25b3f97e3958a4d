"""Glue between Flask requests and the application controller."""
import uuid

from flask import current_app, jsonify, request, session

from .services import PUBLIC_ACTIONS


def get_controller():
    return current_app.extensions["portfolio"]


def _sessions():
    return current_app.extensions["portfolio_sessions"]


def get_state(create=False):
    """
    State for the current browser session.

    Without a live session a fresh signed-out state is returned; it is only
    registered (and a session cookie issued) when `create` is set.
    """
    sid = session.get("sid")
    if sid:
        state = _sessions().peek(sid)
        if state is not None:
            return state
    if not create:
        return get_controller().new_state()
    if not sid:
        sid = session["sid"] = uuid.uuid4().hex
    return _sessions().get(sid)


def end_session():
    sid = session.pop("sid", None)
    if sid:
        _sessions().discard(sid)


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def run(action, **payload):
    """Dispatch one action for the current session and return a JSON response."""
    state = get_state(create=action in PUBLIC_ACTIONS)
    outcome = get_controller().dispatch(state, action, **payload)
    return jsonify(outcome.to_dict()), outcome.status

from flask import Blueprint, jsonify

from portfolio.services import Action
from portfolio.web import end_session, get_state, json_body, run

identity_bp = Blueprint("identity", __name__, url_prefix="/api/auth")


@identity_bp.route("/signin", methods=["POST"])
def sign_in():
    """Exchange a Google ID token for a signed-in session."""
    return run(Action.SIGN_IN, credential=json_body().get("credential"))


@identity_bp.route("/signout", methods=["POST"])
def sign_out():
    response = run(Action.SIGN_OUT)
    end_session()
    return response


@identity_bp.route("/me", methods=["GET"])
def me():
    state = get_state()
    return jsonify({
        "user": state.user.to_dict() if state.user else None,
        "view": state.view.value,
        "theme": state.theme,
    })

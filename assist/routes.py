from flask import Blueprint

from portfolio.services import Action
from portfolio.web import json_body, run

assist_bp = Blueprint("assist", __name__, url_prefix="/api/assist")


# ------------------ WRITING HELP ------------------

@assist_bp.route("/improve", methods=["POST"])
def improve():
    data = json_body()
    return run(Action.AI_IMPROVE, text=data.get("text", ""), target=data.get("target"))


@assist_bp.route("/bullets", methods=["POST"])
def bullets():
    data = json_body()
    return run(Action.AI_BULLETS, text=data.get("text", ""), target=data.get("target"))


@assist_bp.route("/apply", methods=["POST"])
def apply():
    """Accept a suggestion: writes `text` into the editor field named by `target`."""
    data = json_body()
    return run(Action.AI_APPLY, target=data.get("target"), text=data.get("text", ""))


# ------------------ FIRST DRAFT ------------------

@assist_bp.route("/draft", methods=["POST"])
def draft():
    return run(Action.AI_DRAFT, notes=json_body().get("notes", ""))

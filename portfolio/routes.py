from io import BytesIO

from flask import Blueprint, jsonify, request, send_file
from loguru import logger

from rendering.services import THEMES, Template, pdf_filename, render_page, render_to_pdf

from .errors import RenderError
from .model import SkillLevel
from .services import Action
from .web import get_controller, get_state, json_body, run

portfolio_bp = Blueprint("portfolio", __name__, url_prefix="/api")


# ------------------ DASHBOARD ------------------

@portfolio_bp.route("/portfolios", methods=["GET"])
def dashboard():
    return run(Action.NAVIGATE, view="dashboard")


@portfolio_bp.route("/portfolios/new", methods=["POST"])
def create_new():
    return run(Action.CREATE_NEW)


@portfolio_bp.route("/portfolios/<portfolio_id>/edit", methods=["POST"])
def edit(portfolio_id):
    return run(Action.EDIT, portfolio_id=portfolio_id)


@portfolio_bp.route("/portfolios/<portfolio_id>", methods=["DELETE"])
def request_delete(portfolio_id):
    """Asks for confirmation; POST /api/confirm performs the delete."""
    return run(Action.REQUEST_DELETE, portfolio_id=portfolio_id)


@portfolio_bp.route("/confirm", methods=["POST"])
def confirm():
    return run(Action.CONFIRM)


@portfolio_bp.route("/cancel", methods=["POST"])
def cancel():
    return run(Action.CANCEL)


@portfolio_bp.route("/portfolios/<portfolio_id>/preview", methods=["GET"])
def preview(portfolio_id):
    return run(Action.PREVIEW, portfolio_id=portfolio_id)


@portfolio_bp.route("/portfolios/<portfolio_id>/pdf", methods=["GET"])
def download_pdf(portfolio_id):
    controller, state = get_controller(), get_state()
    outcome = controller.dispatch(state, Action.PREVIEW, portfolio_id=portfolio_id)
    if not outcome.ok:
        return jsonify(outcome.to_dict()), outcome.status

    record = state.preview
    try:
        pdf_bytes, filename = render_to_pdf(render_page(record), pdf_filename(record))
    except RenderError as exc:
        logger.error("PDF export failed for {}: {}", portfolio_id, exc)
        return jsonify({
            "ok": False,
            "errors": [],
            "notifications": [{"kind": "alert", "title": exc.title, "message": str(exc), "level": "error"}],
        }), 502

    return send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename,
    )


@portfolio_bp.route("/portfolios/<portfolio_id>/export", methods=["GET"])
def export(portfolio_id):
    controller, state = get_controller(), get_state()
    outcome = controller.dispatch(state, Action.EXPORT, portfolio_id=portfolio_id)
    if not outcome.ok:
        return jsonify(outcome.to_dict()), outcome.status

    buffer = BytesIO(outcome.data["content"].encode("utf-8"))
    return send_file(
        buffer,
        mimetype="application/json",
        as_attachment=True,
        download_name=outcome.data["filename"],
    )


@portfolio_bp.route("/portfolios/import", methods=["POST"])
def import_portfolio():
    upload = request.files.get("file")
    if upload and upload.filename:
        content = upload.read()
    else:
        content = request.get_data()
    return run(Action.IMPORT, content=content)


@portfolio_bp.route("/portfolios/<portfolio_id>/share", methods=["POST"])
def share(portfolio_id):
    return run(Action.SHARE, portfolio_id=portfolio_id)


@portfolio_bp.route("/portfolios/<portfolio_id>/share", methods=["DELETE"])
def unshare(portfolio_id):
    return run(Action.UNSHARE, portfolio_id=portfolio_id)


@portfolio_bp.route("/theme", methods=["POST"])
def set_theme():
    return run(Action.SET_THEME, theme=json_body().get("theme"))


@portfolio_bp.route("/options", methods=["GET"])
def options():
    return jsonify({
        "themes": THEMES,
        "templates": [t.value for t in Template],
        "skillLevels": [level.value for level in SkillLevel],
    })


# ------------------ EDITOR ------------------

@portfolio_bp.route("/editor/step", methods=["POST"])
def step():
    return run(Action.STEP, direction=json_body().get("direction", "next"))


@portfolio_bp.route("/editor/field", methods=["POST"])
def set_field():
    data = json_body()
    return run(Action.SET_FIELD, name=data.get("name"), value=data.get("value"))


@portfolio_bp.route("/editor/items/<kind>", methods=["POST"])
def add_item(kind):
    return run(Action.ADD_ITEM, kind=kind, initial=json_body().get("initial"))


@portfolio_bp.route("/editor/items/<kind>/<row_id>", methods=["PATCH"])
def update_item(kind, row_id):
    return run(Action.UPDATE_ITEM, kind=kind, row_id=row_id, values=json_body().get("values"))


@portfolio_bp.route("/editor/items/<kind>/<row_id>", methods=["DELETE"])
def remove_item(kind, row_id):
    return run(Action.REMOVE_ITEM, kind=kind, row_id=row_id)


@portfolio_bp.route("/editor/items/<kind>/<row_id>/move", methods=["POST"])
def move_item(kind, row_id):
    return run(Action.MOVE_ITEM, kind=kind, row_id=row_id, index=json_body().get("index", 0))


@portfolio_bp.route("/editor/picture", methods=["POST"])
def select_picture():
    upload = request.files.get("profilePic")
    if not upload or not upload.filename:
        return run(Action.SELECT_PICTURE)
    return run(Action.SELECT_PICTURE, data=upload.read(), mimetype=upload.mimetype)


@portfolio_bp.route("/editor/picture", methods=["DELETE"])
def remove_picture():
    return run(Action.REMOVE_PICTURE)


@portfolio_bp.route("/editor/preview", methods=["GET"])
def preview_editor():
    return run(Action.PREVIEW)


@portfolio_bp.route("/editor/save", methods=["POST"])
def save():
    return run(Action.SAVE)

from flask import Blueprint, Response, request
from loguru import logger

from portfolio.errors import StorageError
from portfolio.web import get_controller

from .services import render_not_found, render_page

public_bp = Blueprint("public", __name__)


@public_bp.route("/p", methods=["GET"])
def public_portfolio():
    """
    Read-only share link: /p?id=<portfolio id>.
    No sign-in required; only published portfolios resolve.
    """
    portfolio_id = request.args.get("id", "").strip()
    if not portfolio_id:
        return Response(render_not_found(), status=404, mimetype="text/html")

    try:
        record = get_controller().store.get_public(portfolio_id)
    except StorageError as exc:
        logger.error("Could not load public portfolio {}: {}", portfolio_id, exc)
        return Response(render_not_found(), status=503, mimetype="text/html")

    if record is None:
        return Response(render_not_found(), status=404, mimetype="text/html")
    return Response(render_page(record), mimetype="text/html")

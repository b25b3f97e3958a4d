import sys

from flask import Flask
from flask_cors import CORS
from loguru import logger

from assist.routes import assist_bp
from assist.services import GeminiAssistant
from identity.routes import identity_bp
from identity.services import GoogleIdentityProvider
from media.services import CloudinaryUploader
from portfolio.routes import portfolio_bp
from portfolio.services import PortfolioController, SessionRegistry
from portfolio.storage import MemoryPortfolioStore, MongoPortfolioStore
from rendering.routes import public_bp
from settings import Config


def _configure_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _build_store(config):
    if config.get("MONGO_URL"):
        logger.info("Using MongoDB store ({})", config["MONGO_DB"])
        return MongoPortfolioStore.from_url(config["MONGO_URL"], config["MONGO_DB"], config["PUBLIC_BASE_URL"])
    logger.warning("MONGO_URL not set; portfolios are kept in memory only")
    return MemoryPortfolioStore(config["PUBLIC_BASE_URL"])


def create_app(overrides: dict = None, store=None, identity=None, assistant=None, uploader=None) -> Flask:
    """
    Build the Flask app. Collaborators can be passed in directly (tests do);
    otherwise they are created from configuration.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    _configure_logging(app.config["LOG_LEVEL"])

    # Allow API access from a separate front-end dev server
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)

    controller = PortfolioController(
        store=store or _build_store(app.config),
        identity=identity or GoogleIdentityProvider(app.config["GOOGLE_CLIENT_ID"]),
        assistant=assistant or GeminiAssistant(
            api_key=app.config["GEMINI_API_KEY"],
            model_name=app.config["GEMINI_MODEL"],
            timeout=app.config["AI_TIMEOUT"],
        ),
        uploader=uploader or CloudinaryUploader(
            cloud_name=app.config["CLOUDINARY_CLOUD_NAME"],
            upload_preset=app.config["CLOUDINARY_UPLOAD_PRESET"],
            timeout=app.config["MEDIA_TIMEOUT"],
        ),
        strict_validation=app.config["STRICT_VALIDATION"],
        default_template=app.config["DEFAULT_TEMPLATE"],
        default_theme=app.config["DEFAULT_THEME"],
    )
    app.extensions["portfolio"] = controller
    app.extensions["portfolio_sessions"] = SessionRegistry(
        controller.new_state,
        max_sessions=app.config["MAX_SESSIONS"],
        ttl=app.config["SESSION_TTL"],
    )

    app.register_blueprint(identity_bp)
    app.register_blueprint(portfolio_bp)
    app.register_blueprint(assist_bp)
    app.register_blueprint(public_bp)

    @app.route("/", methods=["GET"])
    def home():
        return {"message": "Portfolio builder API running"}

    return app


# ------------------ MAIN ------------------

if __name__ == "__main__":
    create_app().run(debug=True)

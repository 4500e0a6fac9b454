import os
from flask import Flask
from flask_session import Session
from dotenv import load_dotenv
from flask_login import LoginManager
from docman.models import db
from docman.config import CONFIGS
from docman.config.auth_settings import AuthSettings
from docman.errors import register_error_handlers
from docman.routes.auth import auth_bp
from docman.routes.documents import documents_bp
from docman.routes.main import main_bp
from docman.cli.commands import assign_owner, migrate_legacy_docs
from docman.services.credential_store import CredentialStore
from docman.services.session_resolver import SessionPrincipalResolver
from docman.services.token_lifecycle import TokenLifecycleManager
from docman.utils.auth_utils import install_session_loaders

# Load environment variables early
load_dotenv()

login_manager = LoginManager()
login_manager.login_view = "auth.login"


def register_blueprints(app):
    """Attach all route blueprints."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(documents_bp)
    app.cli.add_command(migrate_legacy_docs)
    app.cli.add_command(assign_owner)


def create_app(config_object=None):
    app = Flask(__name__)
    env = os.getenv("FLASK_ENV", "development")
    app.config.from_object(config_object or CONFIGS.get(env, CONFIGS["development"]))
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Server-side sessions unless disabled
    if app.config.get("SESSION_TYPE"):
        Session(app)

    # Auth configuration is frozen once and handed to the collaborators explicitly
    settings = AuthSettings.from_config(app.config)
    store = CredentialStore()
    resolver = SessionPrincipalResolver(settings, store)
    app.extensions["docman.auth_settings"] = settings
    app.extensions["docman.session_resolver"] = resolver
    app.extensions["docman.token_lifecycle"] = TokenLifecycleManager(settings, store)

    db.init_app(app)
    login_manager.init_app(app)
    install_session_loaders(login_manager, resolver)
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
        register_blueprints(app)

    return app


if __name__ == "__main__":
    create_app().run(host="localhost", port=5000, debug=True, threaded=True)

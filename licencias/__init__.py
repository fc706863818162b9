"""Flask application factory."""

from __future__ import annotations

from flask import Flask, g, redirect, render_template, request, url_for
from flask import session as flask_session

from licencias.blueprints.admin import bp as admin_bp
from licencias.blueprints.auth import bp as auth_bp
from licencias.blueprints.files import bp as files_bp
from licencias.blueprints.main import bp as main_bp
from licencias.blueprints.portal import bp as portal_bp
from licencias.cli import admins_cli, users_cli
from licencias.config import Config
from licencias.errors import ConfigurationError
from licencias.extensions import PORTAL_EXTENSION_KEY, csrf, db, login_manager, portal
from licencias.navigation import (
    VIEW_ENDPOINTS,
    View,
    is_safe_next,
    requested_view_for,
    resolve_view,
    submission_from_session,
)
from licencias.services import PortalServices
from licencias.session import SESSION_CACHE_KEY, SessionController
from licencias.storage import ObjectStorage
from licencias.workflow import LeaveWorkflow


ROUTING_EXEMPT_ENDPOINTS = {"main.health"}
NEXT_EXCLUDED_ENDPOINTS = {"main.index", "portal.home"}


def create_app(config_object: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=False)
    app.config.from_object(config_object)

    controller = SessionController(app.config)
    services = PortalServices(controller=controller, storage=ObjectStorage())
    app.extensions[PORTAL_EXTENSION_KEY] = services
    csrf.init_app(app)

    try:
        with app.app_context():
            # Settings are validated before the database extension sees the URL.
            controller.initialize()
    except ConfigurationError:
        app.logger.error("Starting in configuration-error mode; every page shows the error.")
    else:
        db.init_app(app)
        login_manager.init_app(app)

        # Ensure model metadata is loaded for migrations and tests.
        from licencias import models as _models  # noqa: F401

        services.workflow = LeaveWorkflow(services.settings, services.store, services.storage)

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(files_bp)
    app.cli.add_command(admins_cli)
    app.cli.add_command(users_cli)

    @app.context_processor
    def inject_portal_state() -> dict[str, object]:
        return {
            "portal_session": portal().session(),
            "portal_view": g.get("portal_view"),
            "allow_anonymous_sign_in": bool(app.config.get("ALLOW_ANONYMOUS_SIGN_IN")),
        }

    @app.before_request
    def route_portal_view():
        endpoint = request.endpoint or ""
        if endpoint.startswith("static") or endpoint in ROUTING_EXEMPT_ENDPOINTS:
            return None

        g.pop(SESSION_CACHE_KEY, None)
        services = portal()
        requested = requested_view_for(endpoint, request.view_args)
        resolved = resolve_view(services.session(), requested, submission_from_session(flask_session))
        g.portal_view = resolved

        if resolved == View.CONFIG_ERROR:
            error = services.controller.configuration_error
            message = error.message if error is not None else ConfigurationError.default_message
            return render_template("config_error.html", message=message), 503
        if resolved == View.LOADING:
            return render_template("loading.html"), 503, {"Retry-After": "2"}
        if requested is None or resolved == requested:
            return None

        if resolved == View.AUTH_PROMPT:
            next_url = request.full_path.rstrip("?") if request.method == "GET" else None
            if endpoint not in NEXT_EXCLUDED_ENDPOINTS and is_safe_next(next_url):
                return redirect(url_for("auth.login", next=next_url))
            return redirect(url_for("auth.login"))
        return redirect(url_for(VIEW_ENDPOINTS.get(resolved, "portal.home")))

    return app

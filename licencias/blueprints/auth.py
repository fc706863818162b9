"""Authentication routes."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, redirect, render_template, request, session, url_for
from flask_login import current_user

from licencias.extensions import portal
from licencias.forms import ForgotPasswordForm, LoginForm, RegisterForm, ResetPasswordForm
from licencias.navigation import SUBMISSION_SESSION_KEY, is_safe_next
from licencias.report import PENDING_DELETE_KEY


bp = Blueprint("auth", __name__)


def _clear_portal_state() -> None:
    session.pop(SUBMISSION_SESSION_KEY, None)
    session.pop(PENDING_DELETE_KEY, None)


@bp.route("/login", methods=["GET", "POST"])
def login():
    form = LoginForm()
    if form.validate_on_submit():
        notice = portal().controller.sign_in(form.email.data, form.password.data, remember=form.remember.data)
        notice.flash()
        if not notice.ok:
            return render_template("auth/login.html", form=form), 401

        _clear_portal_state()
        next_url = request.args.get("next")
        if is_safe_next(next_url):
            return redirect(next_url)
        return redirect(url_for("portal.home"))

    status = 400 if request.method == "POST" else 200
    return render_template("auth/login.html", form=form), status


@bp.route("/register", methods=["GET", "POST"])
def register():
    form = RegisterForm()
    if form.validate_on_submit():
        notice = portal().controller.register(form.email.data, form.password.data)
        notice.flash()
        if notice.ok:
            return redirect(url_for("auth.login"))
        return render_template("auth/register.html", form=form), 400

    status = 400 if request.method == "POST" else 200
    return render_template("auth/register.html", form=form), status


@bp.route("/password/forgot", methods=["GET", "POST"])
def forgot_password():
    form = ForgotPasswordForm()
    if form.validate_on_submit():
        notice = portal().controller.request_password_reset(form.email.data)
        notice.flash()
        if notice.ok:
            return redirect(url_for("auth.login"))
        return render_template("auth/forgot_password.html", form=form), 502

    status = 400 if request.method == "POST" else 200
    return render_template("auth/forgot_password.html", form=form), status


@bp.route("/password/reset/<token>", methods=["GET", "POST"])
def reset_password(token: str):
    form = ResetPasswordForm()
    if form.validate_on_submit():
        notice = portal().controller.reset_password(token, form.new_password.data)
        notice.flash()
        if notice.ok:
            return redirect(url_for("auth.login"))
        return render_template("auth/reset_password.html", form=form, token=token), 400

    status = 400 if request.method == "POST" else 200
    return render_template("auth/reset_password.html", form=form, token=token), status


@bp.post("/login/anonymous")
def anonymous_login():
    if not current_app.config.get("ALLOW_ANONYMOUS_SIGN_IN"):
        abort(404)
    notice = portal().controller.sign_in_anonymously()
    notice.flash()
    if not notice.ok:
        return redirect(url_for("auth.login"))
    _clear_portal_state()
    return redirect(url_for("portal.home"))


@bp.get("/login/token/<token>")
def token_login(token: str):
    notice = portal().controller.sign_in_with_token(token)
    notice.flash()
    if not notice.ok:
        return redirect(url_for("auth.login"))
    _clear_portal_state()
    return redirect(url_for("portal.home"))


@bp.post("/logout")
def logout():
    if not current_user.is_authenticated:
        return redirect(url_for("auth.login"))
    notice = portal().controller.sign_out()
    _clear_portal_state()
    notice.flash()
    return redirect(url_for("auth.login"))

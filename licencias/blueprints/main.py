"""General routes."""

from __future__ import annotations

from flask import Blueprint, redirect, url_for

from licencias.extensions import portal
from licencias.session import SessionPhase


bp = Blueprint("main", __name__)


@bp.get("/")
def index():
    return redirect(url_for("portal.home"))


@bp.get("/health")
def health():
    phase = portal().controller.phase
    if phase != SessionPhase.READY:
        return {"status": phase.value.lower()}, 503
    return {"status": "ok"}, 200

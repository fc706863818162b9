"""View routing: which page a request is allowed to see."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlparse

from licencias.session import PortalSession, SessionPhase


class View(str, enum.Enum):
    CONFIG_ERROR = "CONFIG_ERROR"
    LOADING = "LOADING"
    AUTH_PROMPT = "AUTH_PROMPT"
    HOME = "HOME"
    FORM_SICK = "FORM_SICK"
    FORM_VACATION = "FORM_VACATION"
    FORM_PERSONAL = "FORM_PERSONAL"
    FORM_STUDY = "FORM_STUDY"
    ADMIN_REPORT = "ADMIN_REPORT"
    SUCCESS = "SUCCESS"


FORM_VIEWS = {
    "sick": View.FORM_SICK,
    "vacation": View.FORM_VACATION,
    "personal": View.FORM_PERSONAL,
    "study": View.FORM_STUDY,
}
SESSION_ONLY_VIEWS = {View.CONFIG_ERROR, View.LOADING, View.AUTH_PROMPT}


@dataclass(frozen=True)
class SubmissionReceipt:
    ticket_id: str
    form_type: str


def resolve_view(
    session: PortalSession,
    requested: View | None = None,
    submission: SubmissionReceipt | None = None,
) -> View:
    """Single transition function for every page of the portal."""
    if session.phase in (SessionPhase.UNINITIALIZED, SessionPhase.INITIALIZING):
        return View.LOADING
    if session.phase == SessionPhase.CONFIG_ERROR:
        return View.CONFIG_ERROR
    if not session.is_authenticated:
        return View.AUTH_PROMPT

    if requested is None or requested in SESSION_ONLY_VIEWS:
        return View.HOME
    if requested == View.ADMIN_REPORT and not session.is_admin:
        return View.HOME
    if requested == View.SUCCESS and submission is None:
        return View.HOME
    return requested


def form_view(form_type: str | None) -> View | None:
    return FORM_VIEWS.get(form_type or "")


# Endpoints that are portal pages or act on behalf of one. Endpoints missing
# here (static files, health, logout, token links) only need a usable backend.
ENDPOINT_VIEWS: dict[str, View] = {
    "auth.login": View.AUTH_PROMPT,
    "auth.register": View.AUTH_PROMPT,
    "auth.forgot_password": View.AUTH_PROMPT,
    "auth.anonymous_login": View.AUTH_PROMPT,
    "main.index": View.HOME,
    "portal.home": View.HOME,
    "portal.back": View.HOME,
    "portal.success": View.SUCCESS,
    "portal.receipt_download": View.SUCCESS,
    "files.download": View.HOME,
    "admin.report": View.ADMIN_REPORT,
    "admin.report_data": View.ADMIN_REPORT,
    "admin.export": View.ADMIN_REPORT,
    "admin.delete_request": View.ADMIN_REPORT,
    "admin.delete_confirm": View.ADMIN_REPORT,
    "admin.delete_cancel": View.ADMIN_REPORT,
    "admin.whatsapp": View.ADMIN_REPORT,
}


def requested_view_for(endpoint: str | None, view_args: Mapping[str, Any] | None) -> View | None:
    if not endpoint:
        return None
    if endpoint == "portal.leave_form":
        # Unknown form types fall through to the 404 of the route itself.
        return form_view((view_args or {}).get("form_type")) or View.HOME
    return ENDPOINT_VIEWS.get(endpoint)


VIEW_ENDPOINTS: dict[View, str] = {
    View.AUTH_PROMPT: "auth.login",
    View.HOME: "portal.home",
    View.ADMIN_REPORT: "admin.report",
    View.SUCCESS: "portal.success",
}


SUBMISSION_SESSION_KEY = "last_submission"


def submission_from_session(state: Mapping[str, Any]) -> SubmissionReceipt | None:
    payload = state.get(SUBMISSION_SESSION_KEY)
    if not isinstance(payload, dict) or not payload.get("ticket_id"):
        return None
    return SubmissionReceipt(ticket_id=str(payload["ticket_id"]), form_type=str(payload.get("form_type", "")))


def is_safe_next(target: str | None) -> bool:
    """Only same-site relative paths are accepted as post-login redirects."""
    if not target:
        return False
    parsed = urlparse(target)
    return parsed.scheme == "" and parsed.netloc == "" and target.startswith("/") and not target.startswith("//")

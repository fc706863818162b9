from __future__ import annotations

import pytest

from licencias.navigation import (
    SubmissionReceipt,
    View,
    is_safe_next,
    requested_view_for,
    resolve_view,
    submission_from_session,
)
from licencias.session import PortalSession, SessionPhase


EMPLOYEE = PortalSession(phase=SessionPhase.READY, actor_id="user-1")
ADMIN = PortalSession(phase=SessionPhase.READY, actor_id="admin-1", is_admin=True)
SIGNED_OUT = PortalSession(phase=SessionPhase.READY)
RECEIPT = SubmissionReceipt(ticket_id="abc123", form_type="personal")


@pytest.mark.parametrize("phase", [SessionPhase.UNINITIALIZED, SessionPhase.INITIALIZING])
def test_pending_backend_shows_loading_for_every_request(phase):
    session = PortalSession(phase=phase)
    assert resolve_view(session) == View.LOADING
    assert resolve_view(session, View.ADMIN_REPORT) == View.LOADING


def test_configuration_error_wins_over_any_request():
    session = PortalSession(phase=SessionPhase.CONFIG_ERROR)
    for view in View:
        assert resolve_view(session, view, RECEIPT) == View.CONFIG_ERROR


def test_signed_out_user_always_gets_auth_prompt():
    assert resolve_view(SIGNED_OUT) == View.AUTH_PROMPT
    assert resolve_view(SIGNED_OUT, View.FORM_SICK) == View.AUTH_PROMPT
    assert resolve_view(SIGNED_OUT, View.ADMIN_REPORT) == View.AUTH_PROMPT


def test_signed_in_user_lands_on_home_instead_of_session_pages():
    assert resolve_view(EMPLOYEE) == View.HOME
    assert resolve_view(EMPLOYEE, View.AUTH_PROMPT) == View.HOME
    assert resolve_view(EMPLOYEE, View.LOADING) == View.HOME


def test_admin_report_requires_admin():
    assert resolve_view(EMPLOYEE, View.ADMIN_REPORT) == View.HOME
    assert resolve_view(ADMIN, View.ADMIN_REPORT) == View.ADMIN_REPORT


def test_success_requires_a_submission():
    assert resolve_view(EMPLOYEE, View.SUCCESS) == View.HOME
    assert resolve_view(EMPLOYEE, View.SUCCESS, RECEIPT) == View.SUCCESS


def test_form_views_are_open_to_any_signed_in_user():
    for view in (View.FORM_SICK, View.FORM_VACATION, View.FORM_PERSONAL, View.FORM_STUDY):
        assert resolve_view(EMPLOYEE, view) == view


def test_endpoint_mapping_covers_forms_and_unknown_endpoints():
    assert requested_view_for("portal.leave_form", {"form_type": "study"}) == View.FORM_STUDY
    assert requested_view_for("portal.leave_form", {"form_type": "bogus"}) == View.HOME
    assert requested_view_for("admin.export", {"export_format": "txt"}) == View.ADMIN_REPORT
    assert requested_view_for("auth.reset_password", {"token": "x"}) is None
    assert requested_view_for(None, None) is None


def test_submission_is_read_from_session_state():
    assert submission_from_session({}) is None
    assert submission_from_session({"last_submission": {"ticket_id": ""}}) is None
    receipt = submission_from_session({"last_submission": {"ticket_id": "t1", "form_type": "sick"}})
    assert receipt == SubmissionReceipt(ticket_id="t1", form_type="sick")


def test_post_login_redirects_accept_only_relative_paths():
    assert is_safe_next("/licencias/sick?x=1")
    assert not is_safe_next(None)
    assert not is_safe_next("")
    assert not is_safe_next("https://evil.example.com/")
    assert not is_safe_next("//evil.example.com/")
    assert not is_safe_next("licencias/sick")

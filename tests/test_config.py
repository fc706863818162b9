from __future__ import annotations

import pytest

from licencias.config import load_settings
from licencias.errors import ConfigurationError


BASE = {
    "SQLALCHEMY_DATABASE_URI": "postgresql+psycopg://user:pass@db:5432/licencias",
    "APP_NAMESPACE": "default-app-id",
    "APP_TIMEZONE": "America/Argentina/Buenos_Aires",
    "ATTACHMENT_REQUIRED_FORMS": ("sick",),
    "EXPORT_FORMATS": ("txt", "pdf"),
}


def test_settings_expose_store_paths():
    settings = load_settings(BASE)
    assert settings.requests_collection == "default-app-id/public/data/allLicencias"
    assert settings.admin_entry_path("u1") == "default-app-id/public/data/admins/u1"
    assert settings.uploads_prefix("u1", "sick") == "default-app-id/uploads/u1/sick"
    assert settings.attachment_required_forms == frozenset({"sick"})
    assert settings.export_formats == ("txt", "pdf")
    assert settings.allow_anonymous_sign_in is False


@pytest.mark.parametrize(
    ("overrides", "fragment"),
    [
        ({"SQLALCHEMY_DATABASE_URI": None}, "DATABASE_URL"),
        ({"SQLALCHEMY_DATABASE_URI": "not a url"}, "mal formada"),
        ({"APP_NAMESPACE": "../escape"}, "APP_NAMESPACE"),
        ({"ATTACHMENT_REQUIRED_FORMS": ("maternity",)}, "maternity"),
        ({"EXPORT_FORMATS": ("csv",)}, "csv"),
    ],
)
def test_invalid_configuration_is_rejected(overrides, fragment):
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings({**BASE, **overrides})
    assert fragment in excinfo.value.message

"""
Tests de la contraseña de administración y de la validación de Settings.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.exceptions import UnauthorizedError
from core.security import require_admin, verify_admin_password
from conftest import ADMIN_PASSWORD


def test_correct_password_is_accepted():
    assert verify_admin_password(ADMIN_PASSWORD) is True


@pytest.mark.parametrize("candidate", [None, "", "wrong", ADMIN_PASSWORD + " "])
def test_other_values_are_rejected(candidate):
    assert verify_admin_password(candidate) is False


def test_require_admin_raises_401():
    with pytest.raises(UnauthorizedError) as exc_info:
        require_admin("wrong")
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Unauthorized: Invalid admin password"


def test_settings_reject_unknown_timezone():
    with pytest.raises(ValidationError):
        Settings(REPORTING_TIMEZONE="Mars/Olympus_Mons")


def test_settings_reject_out_of_range_hour():
    with pytest.raises(ValidationError):
        Settings(DAILY_UPDATE_HOUR=24)


def test_settings_defaults():
    settings = Settings()
    assert settings.REPORTING_TIMEZONE == "Asia/Bangkok"
    assert (settings.DAILY_UPDATE_HOUR, settings.DAILY_UPDATE_MINUTE) == (7, 1)
    assert settings.reporting_tz.key == "Asia/Bangkok"

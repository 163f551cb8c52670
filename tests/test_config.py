"""Tests for :mod:`core.config`."""

import pytest
from pydantic import ValidationError

from conftest import make_settings


def test_defaults(settings):
    assert settings.otp_block_duration > settings.otp_issue_window
    assert settings.cache_lock_backoff == pytest.approx(0.05)
    assert settings.forwarded_allow_ips == "127.0.0.1"


@pytest.mark.parametrize("block", [600, 900])
def test_block_must_outlast_issue_window(tmp_path, block):
    with pytest.raises(ValidationError, match="otp_block_duration"):
        make_settings(tmp_path, otp_issue_window=900, otp_block_duration=block)


def test_country_code_is_digits(tmp_path):
    assert make_settings(tmp_path, default_country_code="+44").default_country_code == "44"
    with pytest.raises(ValidationError):
        make_settings(tmp_path, default_country_code="uk")

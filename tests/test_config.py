from __future__ import annotations

import pytest
from pydantic import ValidationError

from marketlens.config import Settings


def test_skew_below_one_minute_is_rejected():
    with pytest.raises(ValidationError):
        Settings(token_skew_seconds=30)


def test_live_mode_needs_key_and_environment():
    assert Settings(vertesia_api_key="k", vertesia_environment_id="").live_mode is False
    assert Settings(vertesia_api_key="k", vertesia_environment_id="env").live_mode is True

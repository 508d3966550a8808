import pytest
from pydantic import ValidationError

from authcore.core.config import Settings
from authcore.core.durations import parse_duration


@pytest.mark.parametrize(
    "value,expected",
    [("45s", 45), ("30m", 1800), ("12h", 43200), ("7d", 604800), ("0s", 0), (90, 90)],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "7", "d7", "1w", "1.5h", "-5m", "15 minutes"])
def test_invalid_duration_raises_without_default(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_invalid_duration_falls_back_to_default():
    assert parse_duration("soon", default=900) == 900


def test_surrounding_whitespace_is_ignored():
    assert parse_duration(" 15m ") == 900


def test_negative_and_bool_are_rejected():
    with pytest.raises(ValueError):
        parse_duration(-1)
    with pytest.raises(ValueError):
        parse_duration(True)


@pytest.mark.parametrize("field", ["JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN"])
def test_settings_reject_zero_token_lifetime(field):
    with pytest.raises(ValidationError):
        Settings(
            DATABASE_URL="sqlite+aiosqlite:///:memory:",
            JWT_ACCESS_SECRET="a",
            JWT_REFRESH_SECRET="r",
            INTERNAL_API_KEY="k",
            **{field: "0s"},
        )


def test_settings_parse_token_lifetimes():
    settings = Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        JWT_ACCESS_SECRET="a",
        JWT_REFRESH_SECRET="r",
        INTERNAL_API_KEY="k",
        JWT_ACCESS_EXPIRES_IN="10m",
        JWT_REFRESH_EXPIRES_IN="2d",
    )
    assert settings.token_settings().access_token_ttl == 600
    assert settings.token_settings().refresh_token_ttl == 2 * 86400

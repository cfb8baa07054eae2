"""
Tests for the Presets module and ClientSettings.
"""

import pytest
from pydantic import ValidationError

from shopify_throttled import ClientSettings, PollPolicy, Presets, ThrottleConfig, ThrottleGate


class TestThrottleConfig:
    """Tests for ThrottleConfig dataclass."""

    def test_defaults(self):
        config = ThrottleConfig()
        assert config.low_watermark == 2
        assert config.window_reset_seconds == 1.0

    def test_immutability(self):
        config = ThrottleConfig()
        with pytest.raises(AttributeError):
            config.low_watermark = 10

    def test_to_dict(self):
        config = ThrottleConfig(low_watermark=4, window_reset_seconds=0.5, description="Plus")
        assert config.to_dict() == {"low_watermark": 4, "window_reset_seconds": 0.5}

    @pytest.mark.parametrize("kwargs,match", [
        ({"low_watermark": -1}, "low_watermark"),
        ({"window_reset_seconds": 0}, "window_reset_seconds"),
    ])
    def test_validation(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            ThrottleConfig(**kwargs)


class TestPollPolicy:
    """Tests for PollPolicy dataclass."""

    def test_defaults(self):
        policy = PollPolicy()
        assert policy.interval == 1.0
        assert policy.max_attempts == 60
        assert policy.auto_cancel is False

    def test_budget(self):
        assert PollPolicy(interval=5, max_attempts=120).budget_seconds == 600

    def test_zero_interval_allowed(self):
        assert PollPolicy(interval=0).interval == 0

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError, match="max_attempts must be at least 1"):
            PollPolicy(max_attempts=0)

    def test_interval_must_be_non_negative(self):
        with pytest.raises(ValueError, match="interval must be non-negative"):
            PollPolicy(interval=-1)

    def test_to_dict(self):
        policy = PollPolicy(interval=2.0, max_attempts=3, auto_cancel=True)
        assert PollPolicy(**policy.to_dict()) == policy


class TestPresetsDict:
    """Tests for preset dictionary values."""

    def test_plan_presets_exist(self):
        assert hasattr(Presets, "STANDARD")
        assert hasattr(Presets, "PLUS")
        assert hasattr(Presets, "CONSERVATIVE")

    def test_plus_drains_faster(self):
        assert Presets.PLUS["window_reset_seconds"] < Presets.STANDARD["window_reset_seconds"]

    def test_conservative_keeps_more_headroom(self):
        assert Presets.CONSERVATIVE["low_watermark"] > Presets.STANDARD["low_watermark"]

    def test_presets_build_configs(self):
        for preset in (Presets.STANDARD, Presets.PLUS, Presets.CONSERVATIVE):
            ThrottleConfig(**preset)


class TestPresetsGet:
    """Tests for Presets.get() and Presets.poll_policy()."""

    def test_get_by_upper_name(self):
        assert Presets.get("PLUS") == Presets.PLUS

    def test_get_case_insensitive(self):
        assert Presets.get("plus") == Presets.PLUS
        assert Presets.get("Conservative") == Presets.CONSERVATIVE

    def test_get_unknown(self):
        with pytest.raises(KeyError, match="Unknown preset"):
            Presets.get("enterprise")

    def test_poll_policy(self):
        policy = Presets.poll_policy("Large_Export")
        assert policy.auto_cancel
        assert policy.interval == 30.0

    def test_poll_policy_unknown(self):
        with pytest.raises(KeyError, match="Unknown poll preset"):
            Presets.poll_policy("forever")

    def test_list_presets(self):
        listing = Presets.list_presets()
        assert "throttle:standard" in listing
        assert "poll:quick" in listing
        assert all(listing.values())


class TestPresetsWithGate:
    """Presets plug straight into the throttle gate."""

    def test_gate_from_preset(self):
        gate = ThrottleGate("shop:app", ThrottleConfig(**Presets.PLUS))
        assert gate.config.low_watermark == 4

    def test_gate_from_named_config(self):
        gate = ThrottleGate("shop:app", Presets.THROTTLE_CONFIGS["conservative"])
        assert gate.config.window_reset_seconds == 2.0


class TestClientSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("SHOPIFY_API_VERSION", "SHOPIFY_SCHEME", "SHOPIFY_HTTP_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)
        settings = ClientSettings()
        assert settings.scheme == "https"
        assert settings.http_timeout == 30.0
        assert settings.log_format == "console"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("SHOPIFY_API_VERSION", "2024-07")
        monkeypatch.setenv("SHOPIFY_SCHEME", "HTTP")
        monkeypatch.setenv("SHOPIFY_HTTP_TIMEOUT", "90")

        settings = ClientSettings()

        assert settings.api_version == "2024-07"
        assert settings.scheme == "http"
        assert settings.http_timeout == 90.0

    def test_invalid_scheme(self):
        with pytest.raises(ValidationError):
            ClientSettings(scheme="ftp")

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            ClientSettings(http_timeout=0)

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            ClientSettings(log_format="xml")

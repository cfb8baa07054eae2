"""
Throttle and Polling Presets
============================

Immutable configuration objects for the throttle gate and the bulk job
poller, plus named presets for common Shopify plans and export sizes.

Usage:
    ```python
    from shopify_throttled import PollPolicy, Presets, ThrottleConfig

    # Throttle tuned for a Shopify Plus store
    throttle = ThrottleConfig(**Presets.PLUS)

    # Poll every 5s for up to 10 minutes, cancel if it never finishes
    policy = PollPolicy(interval=5.0, max_attempts=120, auto_cancel=True)

    # Or pick a named polling preset
    policy = Presets.poll_policy("large_export")
    ```
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class ThrottleConfig:
    """
    Immutable throttle configuration.

    Attributes:
        low_watermark: REST calls held in reserve. When the last reported
            budget is at or below this, the gate waits for the window to
            reset. Kept above zero so that concurrent callers acting on
            stale telemetry do not overrun the bucket.
        window_reset_seconds: Estimated time for the REST bucket to drain
            enough to accept new calls.
        description: Human-readable description of this preset
    """
    low_watermark: int = 2
    window_reset_seconds: float = 1.0
    description: str = ""

    def __post_init__(self):
        if self.low_watermark < 0:
            raise ValueError("low_watermark must be non-negative")
        if self.window_reset_seconds <= 0:
            raise ValueError("window_reset_seconds must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to kwargs dict."""
        return {
            "low_watermark": self.low_watermark,
            "window_reset_seconds": self.window_reset_seconds,
        }


@dataclass(frozen=True)
class PollPolicy:
    """
    Bounds on how long a bulk job is polled.

    Sleeping happens only between checks, so total sleep is
    ``interval * (max_attempts - 1)``, within ``budget_seconds``.

    Attributes:
        interval: Seconds to sleep between status checks
        max_attempts: Number of status checks before giving up
        auto_cancel: Cancel the job when the budget runs out
        description: Human-readable description of this preset
    """
    interval: float = 1.0
    max_attempts: int = 60
    auto_cancel: bool = False
    description: str = ""

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must be non-negative")

    @property
    def budget_seconds(self) -> float:
        return self.interval * self.max_attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to kwargs dict."""
        return {
            "interval": self.interval,
            "max_attempts": self.max_attempts,
            "auto_cancel": self.auto_cancel,
        }


class Presets:
    """
    Named throttle and polling presets.

    Throttle presets are plain dicts for ``ThrottleConfig(**preset)``.
    Polling presets live in POLL_CONFIGS.

    Note:
        REST buckets leak at 2 calls/s on standard plans and 4 calls/s on
        Plus, so the reset estimate is the time to free one slot.
    """

    # =========================================================================
    # REST throttle presets by plan
    # =========================================================================

    STANDARD = {
        "low_watermark": 2,
        "window_reset_seconds": 1.0,
    }

    PLUS = {
        "low_watermark": 4,
        "window_reset_seconds": 0.5,
    }

    CONSERVATIVE = {
        "low_watermark": 10,
        "window_reset_seconds": 2.0,
    }

    THROTTLE_CONFIGS: Dict[str, ThrottleConfig] = {
        "standard": ThrottleConfig(2, 1.0, "Standard plan - 40 call bucket, 2/s leak"),
        "plus": ThrottleConfig(4, 0.5, "Shopify Plus - 80 call bucket, 4/s leak"),
        "conservative": ThrottleConfig(10, 2.0, "Shared credential - leave headroom"),
    }

    # =========================================================================
    # Bulk polling presets
    # =========================================================================

    POLL_CONFIGS: Dict[str, PollPolicy] = {
        "quick": PollPolicy(1.0, 30, False, "Small exports, ~30s budget"),
        "standard": PollPolicy(5.0, 120, True, "Typical exports, ~10min budget"),
        "large_export": PollPolicy(30.0, 240, True, "Full catalog/order history, ~2h budget"),
    }

    @classmethod
    def get(cls, name: str) -> Dict[str, Any]:
        """
        Get a throttle preset by name (case-insensitive).

        Raises:
            KeyError: If preset name is not found
        """
        name_upper = name.upper()
        if name_upper in ("STANDARD", "PLUS", "CONSERVATIVE"):
            return getattr(cls, name_upper)

        name_lower = name.lower()
        if name_lower in cls.THROTTLE_CONFIGS:
            return cls.THROTTLE_CONFIGS[name_lower].to_dict()

        raise KeyError(
            f"Unknown preset: {name}. "
            f"Available: {list(cls.THROTTLE_CONFIGS.keys())}"
        )

    @classmethod
    def poll_policy(cls, name: str) -> PollPolicy:
        """
        Get a polling preset by name (case-insensitive).

        Raises:
            KeyError: If preset name is not found
        """
        try:
            return cls.POLL_CONFIGS[name.lower()]
        except KeyError:
            raise KeyError(
                f"Unknown poll preset: {name}. "
                f"Available: {list(cls.POLL_CONFIGS.keys())}"
            ) from None

    @classmethod
    def list_presets(cls) -> Dict[str, str]:
        """List all presets with descriptions."""
        listing = {f"throttle:{name}": c.description for name, c in cls.THROTTLE_CONFIGS.items()}
        listing.update({f"poll:{name}": c.description for name, c in cls.POLL_CONFIGS.items()})
        return listing

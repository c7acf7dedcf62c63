"""Tunable parameters for hole punching and connection upkeep."""

from dataclasses import dataclass, field
from datetime import timedelta

from .types import ConfigError


@dataclass
class HolePunchConfig:
    """Configuration consumed by the transport loop that drives connections."""

    punch_attempts: int = 5
    """Number of punch packets sent toward the peer's public endpoint."""

    punch_delay: timedelta = field(default_factory=lambda: timedelta(milliseconds=100))
    """Delay between punch attempts."""

    connection_timeout: timedelta = field(default_factory=lambda: timedelta(seconds=10))
    """How long a connection may stay CONNECTING before it is marked failed."""

    keepalive_interval: timedelta = field(default_factory=lambda: timedelta(seconds=30))
    """Silence after which a ping should be sent."""

    max_consecutive_failures: int = 5
    """Undecodable or undecryptable messages tolerated in a row before failing."""

    replay_window: int = 64
    """Number of recent peer sequence numbers remembered for duplicate detection."""

    @classmethod
    def default(cls) -> "HolePunchConfig":
        """Creates the default configuration."""
        return cls()

    @classmethod
    def lan(cls) -> "HolePunchConfig":
        """Creates a configuration with short timings for peers on the same LAN."""
        return cls(
            punch_attempts=2,
            punch_delay=timedelta(milliseconds=20),
            connection_timeout=timedelta(seconds=3),
            keepalive_interval=timedelta(seconds=10),
        )

    def validate(self) -> "HolePunchConfig":
        """
        Check that every value is usable.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigError: If any value is out of range
        """
        if self.punch_attempts < 1:
            raise ConfigError(f"punch_attempts must be at least 1, got {self.punch_attempts}")

        if self.punch_delay < timedelta(0):
            raise ConfigError(f"punch_delay must not be negative, got {self.punch_delay}")

        for name in ("connection_timeout", "keepalive_interval"):
            value = getattr(self, name)
            if value <= timedelta(0):
                raise ConfigError(f"{name} must be positive, got {value}")

        if self.max_consecutive_failures < 1:
            raise ConfigError(
                f"max_consecutive_failures must be at least 1, got {self.max_consecutive_failures}"
            )

        if self.replay_window < 1:
            raise ConfigError(f"replay_window must be at least 1, got {self.replay_window}")

        return self

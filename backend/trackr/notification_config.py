"""Notification engine configuration loader."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# All valid trigger names
VALID_TRIGGERS = {"due_soon", "overdue", "assigned", "mentioned"}

# Default trigger states
DEFAULT_TRIGGERS = {
    "due_soon": True,
    "overdue": True,
    "assigned": True,
    "mentioned": True,
}

# Numeric options and the type each is coerced to
NUMERIC_OPTIONS = {
    "due_soon_window_hours": float,
    "scan_concurrency": int,
    "dispatch_timeout_ms": int,
    "assignment_timeout_ms": int,
    "scan_deadline_seconds": float,
}


@dataclass
class NotificationConfig:
    """Notification engine configuration."""

    mode: str = "on"  # on | off
    triggers: dict = field(default_factory=lambda: DEFAULT_TRIGGERS.copy())
    due_soon_window_hours: float = 24
    scan_concurrency: int = 4
    dispatch_timeout_ms: int = 10_000
    assignment_timeout_ms: int = 3_000
    scan_deadline_seconds: float = 300

    def is_trigger_enabled(self, trigger: str) -> bool:
        """Check if a trigger is enabled (mode off disables everything)."""
        if self.mode == "off":
            return False
        return self.triggers.get(trigger, False)

    @property
    def due_soon_window(self) -> timedelta:
        return timedelta(hours=self.due_soon_window_hours)

    @property
    def dispatch_timeout(self) -> float:
        return self.dispatch_timeout_ms / 1000

    @property
    def assignment_timeout(self) -> float:
        return self.assignment_timeout_ms / 1000


def load_notification_config(config_path: Optional[Path] = None) -> NotificationConfig:
    """Load notification config from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        NotificationConfig with values from file or defaults.
    """
    if config_path is None:
        # Default location relative to project root
        config_path = (
            Path(__file__).parent.parent.parent / "config" / "notifications.yaml"
        )

    config = NotificationConfig()

    if not config_path.exists():
        logger.info(f"Config file not found at {config_path}, using defaults")
        return config

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        if "mode" in data:
            mode = data["mode"]
            # YAML 1.1 reads bare on/off as booleans
            if isinstance(mode, bool):
                mode = "on" if mode else "off"
            config.mode = str(mode)
        if "triggers" in data:
            for trigger, enabled in data["triggers"].items():
                if trigger in VALID_TRIGGERS:
                    config.triggers[trigger] = bool(enabled)
        for option, cast in NUMERIC_OPTIONS.items():
            if option in data:
                value = cast(data[option])
                if value <= 0:
                    raise ValueError(f"{option} must be positive, got {value}")
                setattr(config, option, value)

        logger.info(f"Loaded notification config from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return NotificationConfig()


# Global config instance (loaded on first use)
_config: Optional[NotificationConfig] = None


def get_notification_config(config_path: Optional[Path] = None) -> NotificationConfig:
    """Get the global notification config (lazy loaded)."""
    global _config
    if _config is None:
        _config = load_notification_config(config_path)
    return _config

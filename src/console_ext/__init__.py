"""console-ext: page someone when the logs say something is on fire."""

__version__ = "0.1.0"

from console_ext.config import Config, ConfigError, create_config  # noqa: E402
from console_ext.relay import NotificationRelay  # noqa: E402

__all__ = ["__version__", "Config", "ConfigError", "create_config", "NotificationRelay"]

"""Configuration exports."""

from featureflow.config.loader import DEFAULT_CONFIG_PATH, load_app_config
from featureflow.config.models import AppConfig

__all__ = ["AppConfig", "DEFAULT_CONFIG_PATH", "load_app_config"]

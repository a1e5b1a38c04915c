"""Configuration module for msgbridge."""

from msgbridge.config.loader import load_config, get_config_path, save_config
from msgbridge.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path"]

"""Configuration module for quickconnect."""

from quickconnect.config.loader import load_config, get_config_path
from quickconnect.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]

"""
Configuration loading and validation for the DEX analytics scanner.
"""

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from dex_analytics.config_schema import AppConfig
from dex_analytics.exceptions import ConfigurationError

ENV_CHAIN_ID = "DEX_ANALYTICS_CHAIN_ID"
ENV_GAS_PRICE_GWEI = "DEX_ANALYTICS_GAS_PRICE_GWEI"
ENV_SNAPSHOT_PATH = "DEX_ANALYTICS_SNAPSHOT"


class ConfigError(ConfigurationError):
    """Raised when config is invalid or missing required fields."""

    pass


def _apply_env_overrides(
    config_dict: Dict[str, Any], environ: Mapping[str, str]
) -> Dict[str, Any]:
    """Environment values win over the file for deployment-specific knobs."""
    merged = dict(config_dict)
    if environ.get(ENV_CHAIN_ID):
        merged["chain_id"] = environ[ENV_CHAIN_ID]
    if environ.get(ENV_SNAPSHOT_PATH):
        merged["snapshot_path"] = environ[ENV_SNAPSHOT_PATH]
    if environ.get(ENV_GAS_PRICE_GWEI):
        detector = dict(merged.get("detector") or {})
        detector["gas_price_gwei"] = environ[ENV_GAS_PRICE_GWEI]
        merged["detector"] = detector
    return merged


def parse_config(
    config_dict: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """
    Validate a config dictionary.

    Args:
        config_dict: Loaded YAML config
        environ: Environment for overrides (defaults to os.environ)

    Raises:
        ConfigError: If any field is invalid
    """
    if not isinstance(config_dict, dict):
        raise ConfigError("Config file must contain a YAML dictionary")

    merged = _apply_env_overrides(
        config_dict, os.environ if environ is None else environ
    )
    try:
        return AppConfig.model_validate(merged)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid config: {problems}") from e


def load_config(
    config_path: str, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """
    Load and validate config from YAML file.

    Args:
        config_path: Path to config YAML file
        environ: Environment for overrides (defaults to os.environ)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If config invalid, unparseable or file not found
    """
    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if config_dict is None:
        config_dict = {}
    return parse_config(config_dict, environ)

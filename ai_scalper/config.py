"""
Configuration management with environment variable resolution.
"""
import yaml
import os
import re
from typing import Any, Dict, Optional
from pathlib import Path

from ai_scalper.data_storage import settings_from_dict
from ai_scalper.models import Credentials, RiskSettings


def resolve_env_vars(value: Any) -> Any:
    """
    Resolve environment variables in strings like ${VAR_NAME}.

    Args:
        value: Value to process (can be str, dict, list, or other)

    Returns:
        Processed value with environment variables resolved
    """
    if isinstance(value, str):
        # ${VAR_NAME} or ${VAR_NAME:default_value}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    elif isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    return value


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file and resolve environment variables.

    Args:
        config_path: Path to the configuration YAML file

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f) or {}

    return resolve_env_vars(config)


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a configuration value using dot notation path.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., 'risk.risk_per_trade')
        default: Default value if path not found

    Returns:
        Configuration value or default
    """
    keys = path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate numeric ranges of the risk section.

    Credentials are checked at start time instead (they may come from the
    per-user settings store).

    Raises:
        ValueError: If configuration is invalid
    """
    risk = config.get('risk') or {}
    for key in ('risk_per_trade', 'max_concurrent_scalps', 'ai_analysis_freq'):
        if key in risk and risk[key] is not None and risk[key] <= 0:
            raise ValueError(f"risk.{key} must be > 0")

    if risk.get('limit_order_offset') is not None and risk['limit_order_offset'] < 0:
        raise ValueError("risk.limit_order_offset must be >= 0")

    interval = get_config_value(config, 'scheduler.trade_interval_seconds', 30)
    if interval <= 0:
        raise ValueError("scheduler.trade_interval_seconds must be > 0")


def build_risk_settings(
    config: Dict[str, Any],
    stored: Optional[Dict[str, Any]] = None,
    base: Optional[RiskSettings] = None
) -> RiskSettings:
    """
    Resolve risk settings: base < stored user settings < YAML `risk` section.

    Args:
        config: Configuration dictionary
        stored: Settings dict from the per-user store (blob key names)
        base: Settings restored from the data file

    Returns:
        RiskSettings
    """
    settings = base or RiskSettings()
    if stored:
        settings = settings_from_dict(stored, settings)

    overrides = {k: v for k, v in (config.get('risk') or {}).items()
                 if k in RiskSettings.model_fields and v is not None}
    if overrides:
        settings = RiskSettings.model_validate({**settings.model_dump(), **overrides})
    return settings


def build_credentials(
    config: Dict[str, Any],
    stored: Optional[Credentials] = None
) -> Credentials:
    """
    Resolve API credentials; non-empty YAML values win over stored ones.
    """
    stored = stored or Credentials()
    return Credentials(
        alpaca_key=get_config_value(config, 'alpaca.key_id') or stored.alpaca_key,
        alpaca_secret=get_config_value(config, 'alpaca.secret_key') or stored.alpaca_secret,
        gemini_key=get_config_value(config, 'gemini.api_key') or stored.gemini_key,
    )

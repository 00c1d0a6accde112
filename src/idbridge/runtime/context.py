import os
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from src.idbridge.runtime.config.config_data import ConfigData
from src.idbridge.runtime.config.config_template import load_templated_yaml


@dataclass
class AppContext:
    """Application context containing configuration and other app-wide state."""

    config: ConfigData


# Context variable for application context; unset until first use
_app_context: ContextVar[AppContext | None] = ContextVar("app_context", default=None)
_default_context: AppContext | None = None


def _load_default_context() -> AppContext:
    """Load config.yaml (or APP_CONFIG_FILE) once, falling back to defaults."""
    global _default_context

    if _default_context is None:
        config_path = Path(os.getenv("APP_CONFIG_FILE", "config.yaml"))
        if config_path.exists():
            config = load_templated_yaml(config_path)
        else:
            logger.warning("{} not found, using default configuration", config_path)
            config = ConfigData()
        _default_context = AppContext(config=config)

    return _default_context


def get_context() -> AppContext:
    """Get the current application context.

    Returns:
        AppContext: The current application context containing configuration.
    """
    return _app_context.get() or _load_default_context()


def set_context(context: AppContext) -> Token[AppContext | None]:
    """Set the current application context.

    Args:
        context: AppContext instance to set as current.
    """
    return _app_context.set(context)


def _recursive_model_dump_exclude_unset(model: BaseModel) -> dict:
    """Recursively dump a Pydantic model keeping only explicitly set fields.

    A nested model is included in full when any field below it was set.
    """
    result = {}
    explicitly_set_fields = model.model_fields_set

    for field_name in model.__class__.model_fields:
        field_value = getattr(model, field_name)

        if isinstance(field_value, BaseModel):
            if (
                _recursive_model_dump_exclude_unset(field_value)
                or field_name in explicitly_set_fields
            ):
                result[field_name] = field_value.model_dump()
        elif isinstance(field_value, dict):
            if field_name in explicitly_set_fields or any(
                isinstance(v, BaseModel) and v.model_fields_set
                for v in field_value.values()
            ):
                result[field_name] = {
                    key: value.model_dump() if isinstance(value, BaseModel) else value
                    for key, value in field_value.items()
                }
        elif field_name in explicitly_set_fields:
            result[field_name] = field_value

    return result


def _recursive_dict_merge(base_dict: dict, override_dict: dict) -> dict:
    """Recursively merge two dictionaries, override values winning."""
    result = base_dict.copy()

    for key, value in override_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _recursive_dict_merge(result[key], value)
        else:
            result[key] = value

    return result


def _merge_configs(base_config: ConfigData, override_config: ConfigData) -> ConfigData:
    """Merge the explicitly set fields of override_config into base_config."""
    base_dict = base_config.model_dump()
    override_dict = _recursive_model_dump_exclude_unset(override_config)
    merged_dict = _recursive_dict_merge(base_dict, override_dict)
    return ConfigData.model_validate(merged_dict)


@contextmanager
def with_context(config_override: ConfigData | None = None):
    """Context manager for temporarily overriding the application context.

    Only fields explicitly set on ``config_override`` replace the current
    values; everything else is inherited from the parent context.

    Example:
        override = ConfigData()
        override.balance.initial_amount = 1000
        with with_context(override):
            assert get_config().balance.initial_amount == 1000
    """
    if config_override is None:
        yield
        return

    if not isinstance(config_override, ConfigData):
        raise ValueError(
            f"config_override must be ConfigData, or None, got {type(config_override)}"
        )

    merged_config = _merge_configs(get_context().config, config_override)
    token = set_context(replace(get_context(), config=merged_config))
    try:
        yield
    finally:
        _app_context.reset(token)


def set_config(config: ConfigData) -> None:
    """Replace the entire current configuration with the provided one."""
    set_context(replace(get_context(), config=config))


def get_config() -> ConfigData:
    """Convenience function to get the current configuration.

    Returns:
        ConfigData: The current configuration from the app context.
    """
    return get_context().config

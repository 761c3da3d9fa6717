"""
Configuration management and loading.

Handles gateway settings from a YAML file and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ai_gateway.core.errors import ValidationError
from ai_gateway.core.families import ModelFamily, ModelSelector, ModelSpec
from ai_gateway.core.pricing import DEFAULT_PRICING_TABLE, ModelPricing, PricingTable


@dataclass(frozen=True)
class ModelConfig:
    """Model identifiers and generation defaults for one configured model."""
    family: ModelFamily
    model_id: str
    fallback_model_id: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.model_id:
            raise ValueError("model_id is required and cannot be empty")

    def selector(self) -> ModelSelector:
        """Build the primary/fallback selector for this model."""
        primary = ModelSpec(self.model_id, self.family, dict(self.parameters))
        fallback = None
        if self.fallback_model_id:
            fallback = ModelSpec(self.fallback_model_id, self.family, dict(self.parameters))
        return ModelSelector(primary=primary, fallback=fallback)


@dataclass(frozen=True)
class CostLimitsConfig:
    """Budget limits for admission control."""
    daily: float
    monthly: float
    warning_threshold: float = 80.0  # percent of limit

    def __post_init__(self):
        """Validate limit values."""
        if self.daily <= 0:
            raise ValueError("Daily cost limit must be positive")
        if self.monthly <= 0:
            raise ValueError("Monthly cost limit must be positive")
        if self.warning_threshold < 0 or self.warning_threshold > 100:
            raise ValueError("Warning threshold must be between 0 and 100")


@dataclass(frozen=True)
class CacheConfig:
    """Response cache settings."""
    enabled: bool = True
    ttl_seconds: float = 3600.0
    max_entries: int = 1000

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ValueError("Cache ttl_seconds must be > 0")
        if self.max_entries <= 0:
            raise ValueError("Cache max_entries must be > 0")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy settings, delays in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be > 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")


@dataclass(frozen=True)
class GatewayConfig:
    """Complete gateway configuration."""
    region: str
    models: Dict[str, ModelConfig]
    cost_limits: CostLimitsConfig
    cache: CacheConfig
    retry: RetryConfig
    pricing: PricingTable = DEFAULT_PRICING_TABLE

    def get_model(self, key: str) -> ModelConfig:
        """Get a configured model by key.

        Raises:
            ValidationError: If no model is configured under ``key``
        """
        if key not in self.models:
            raise ValidationError(f"Unsupported model: {key}")
        return self.models[key]


def default_gateway_config() -> GatewayConfig:
    """Built-in defaults used when no file or environment overrides apply."""
    models = {
        "claude": ModelConfig(
            family=ModelFamily.ANTHROPIC_CLAUDE,
            model_id="anthropic.claude-3-sonnet-20240229-v1:0",
            fallback_model_id="anthropic.claude-3-haiku-20240307-v1:0",
            parameters={"max_tokens": 4000, "temperature": 0.7, "top_p": 1.0, "top_k": 250},
        ),
        "titan": ModelConfig(
            family=ModelFamily.AMAZON_TITAN_TEXT,
            model_id="amazon.titan-text-express-v1",
            fallback_model_id="amazon.titan-text-lite-v1",
            parameters={"max_tokens": 3000, "temperature": 0.7, "top_p": 1.0},
        ),
        "cohere": ModelConfig(
            family=ModelFamily.COHERE_COMMAND,
            model_id="cohere.command-text-v14",
            fallback_model_id="cohere.command-light-text-v14",
            parameters={"max_tokens": 2000, "temperature": 0.7, "top_p": 0.75, "top_k": 0},
        ),
        "stable_diffusion": ModelConfig(
            family=ModelFamily.STABILITY_DIFFUSION,
            model_id="stability.stable-diffusion-xl-v1",
            parameters={"width": 1024, "height": 1024, "cfg_scale": 7.0, "steps": 30, "seed": 0},
        ),
        "embedding": ModelConfig(
            family=ModelFamily.AMAZON_TITAN_EMBED,
            model_id="amazon.titan-embed-text-v1",
        ),
    }
    return GatewayConfig(
        region="ap-southeast-2",
        models=models,
        cost_limits=CostLimitsConfig(daily=100.0, monthly=2000.0, warning_threshold=80.0),
        cache=CacheConfig(),
        retry=RetryConfig(),
    )


def load_gateway_config(path: str, base: Optional[GatewayConfig] = None) -> GatewayConfig:
    """Load and validate gateway configuration from a YAML file.

    Sections present in the file replace the corresponding defaults; models
    are merged by key. Unknown keys are rejected so that a typo can never
    silently disable a budget limit.

    Args:
        path: Path to YAML configuration file
        base: Configuration to overlay, defaults to ``default_gateway_config()``

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'region', 'models', 'cost_limits', 'cache', 'retry', 'pricing'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    config = base or default_gateway_config()

    if 'region' in raw_config:
        region = raw_config['region']
        if not isinstance(region, str) or not region:
            raise ValueError("'region' must be a non-empty string")
        config = replace(config, region=region)

    if 'models' in raw_config:
        models_data = _require_dict(raw_config['models'], "models")
        models = dict(config.models)
        for key, model_data in models_data.items():
            models[key] = _parse_model_config(
                _require_dict(model_data, f"models.{key}"), f"models.{key}"
            )
        config = replace(config, models=models)

    if 'cost_limits' in raw_config:
        data = _require_dict(raw_config['cost_limits'], "cost_limits")
        _check_keys(data, {'daily', 'monthly', 'warning_threshold'}, "cost_limits")
        for required in ('daily', 'monthly'):
            if required not in data:
                raise ValueError(f"Missing required '{required}' in cost_limits")
        config = replace(config, cost_limits=CostLimitsConfig(
            daily=_number(data['daily'], "cost_limits.daily"),
            monthly=_number(data['monthly'], "cost_limits.monthly"),
            warning_threshold=_number(
                data.get('warning_threshold', config.cost_limits.warning_threshold),
                "cost_limits.warning_threshold",
            ),
        ))

    if 'cache' in raw_config:
        data = _require_dict(raw_config['cache'], "cache")
        _check_keys(data, {'enabled', 'ttl_seconds', 'max_entries'}, "cache")
        enabled = data.get('enabled', config.cache.enabled)
        if not isinstance(enabled, bool):
            raise ValueError("'enabled' in cache must be a boolean")
        config = replace(config, cache=CacheConfig(
            enabled=enabled,
            ttl_seconds=_number(data.get('ttl_seconds', config.cache.ttl_seconds), "cache.ttl_seconds"),
            max_entries=int(_number(data.get('max_entries', config.cache.max_entries), "cache.max_entries")),
        ))

    if 'retry' in raw_config:
        data = _require_dict(raw_config['retry'], "retry")
        _check_keys(data, {'max_retries', 'base_delay', 'max_delay'}, "retry")
        config = replace(config, retry=RetryConfig(
            max_retries=int(_number(data.get('max_retries', config.retry.max_retries), "retry.max_retries")),
            base_delay=_number(data.get('base_delay', config.retry.base_delay), "retry.base_delay"),
            max_delay=_number(data.get('max_delay', config.retry.max_delay), "retry.max_delay"),
        ))

    if 'pricing' in raw_config:
        data = _require_dict(raw_config['pricing'], "pricing")
        overrides = {
            model_id: _parse_pricing(_require_dict(entry, f"pricing.{model_id}"), f"pricing.{model_id}")
            for model_id, entry in data.items()
        }
        config = replace(config, pricing=config.pricing.merged(overrides))

    return config


def _parse_model_config(data: Dict, path: str) -> ModelConfig:
    """Parse and validate one model section.

    Args:
        data: Model configuration data
        path: Path for error messages

    Returns:
        Validated ModelConfig

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'family', 'model_id', 'fallback_model_id', 'parameters'}, path)

    if 'family' not in data:
        raise ValueError(f"Missing required 'family' in {path}")
    family_str = data['family']
    if not isinstance(family_str, str):
        raise ValueError(f"'family' in {path} must be a string")
    try:
        family = ModelFamily(family_str.lower())
    except ValueError:
        valid_families = [family.value for family in ModelFamily]
        raise ValueError(f"'family' in {path} must be one of: {valid_families}")

    if 'model_id' not in data:
        raise ValueError(f"Missing required 'model_id' in {path}")
    model_id = data['model_id']
    if not isinstance(model_id, str) or not model_id.strip():
        raise ValueError(f"'model_id' in {path} must be a non-empty string")

    fallback = data.get('fallback_model_id')
    if fallback is not None and (not isinstance(fallback, str) or not fallback.strip()):
        raise ValueError(f"'fallback_model_id' in {path} must be a non-empty string")

    parameters = data.get('parameters', {}) or {}
    if not isinstance(parameters, dict):
        raise ValueError(f"'parameters' in {path} must be a dictionary")

    return ModelConfig(
        family=family,
        model_id=model_id,
        fallback_model_id=fallback,
        parameters=dict(parameters),
    )


def _parse_pricing(data: Dict, path: str) -> ModelPricing:
    _check_keys(data, {'input_per_1k', 'output_per_1k', 'per_image'}, path)
    if not data:
        raise ValueError(f"{path} must define at least one rate")

    def rate(key: str) -> Optional[Decimal]:
        if key not in data:
            return None
        try:
            value = Decimal(str(data[key]))
        except InvalidOperation:
            raise ValueError(f"'{key}' in {path} must be a number")
        if value < 0:
            raise ValueError(f"'{key}' in {path} must be >= 0")
        return value

    return ModelPricing(
        input_cost_per_1k=rate('input_per_1k') or Decimal("0"),
        output_cost_per_1k=rate('output_per_1k') or Decimal("0"),
        per_image=rate('per_image'),
    )


def _require_dict(value: Any, path: str) -> Dict:
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


# Environment variable names for the non-model settings
_ENV_REGION = "AWS_REGION"
_ENV_DAILY_LIMIT = "BEDROCK_DAILY_LIMIT"
_ENV_MONTHLY_LIMIT = "BEDROCK_MONTHLY_LIMIT"
_ENV_WARNING_THRESHOLD = "BEDROCK_WARNING_THRESHOLD"
_ENV_CACHE_ENABLED = "BEDROCK_CACHE_ENABLED"
_ENV_CACHE_TTL = "BEDROCK_CACHE_TTL"
_ENV_CACHE_MAX_SIZE = "BEDROCK_CACHE_MAX_SIZE"
_ENV_MAX_RETRIES = "BEDROCK_MAX_RETRIES"
_ENV_BASE_DELAY_MS = "BEDROCK_BASE_DELAY"
_ENV_MAX_DELAY_MS = "BEDROCK_MAX_DELAY"


def apply_env_overrides(
    config: GatewayConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> GatewayConfig:
    """Overlay environment variables onto a configuration.

    Each configured model reads ``<KEY>_MODEL_ID``, ``<KEY>_FALLBACK_MODEL_ID``
    and ``<KEY>_<PARAMETER>`` for every default parameter it already has, where
    ``<KEY>`` is the upper-cased model key (``CLAUDE_MAX_TOKENS``,
    ``STABLE_DIFFUSION_CFG_SCALE``). Retry delays are given in milliseconds.

    Args:
        config: Configuration to overlay
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        New GatewayConfig with overrides applied

    Raises:
        ValueError: If an environment value cannot be parsed or is invalid
    """
    env = os.environ if environ is None else environ

    region = env.get(_ENV_REGION) or config.region

    models = {}
    for key, model in config.models.items():
        prefix = key.upper()
        parameters = dict(model.parameters)
        for name, current in model.parameters.items():
            raw = env.get(f"{prefix}_{name.upper()}")
            if raw is not None:
                parameters[name] = _coerce_like(raw, current, f"{prefix}_{name.upper()}")
        models[key] = replace(
            model,
            model_id=env.get(f"{prefix}_MODEL_ID") or model.model_id,
            fallback_model_id=env.get(f"{prefix}_FALLBACK_MODEL_ID") or model.fallback_model_id,
            parameters=parameters,
        )

    limits = config.cost_limits
    cost_limits = CostLimitsConfig(
        daily=_env_float(env, _ENV_DAILY_LIMIT, limits.daily),
        monthly=_env_float(env, _ENV_MONTHLY_LIMIT, limits.monthly),
        warning_threshold=_env_float(env, _ENV_WARNING_THRESHOLD, limits.warning_threshold),
    )

    cache_enabled = config.cache.enabled
    if _ENV_CACHE_ENABLED in env:
        cache_enabled = env[_ENV_CACHE_ENABLED].strip().lower() != "false"
    cache = CacheConfig(
        enabled=cache_enabled,
        ttl_seconds=_env_float(env, _ENV_CACHE_TTL, config.cache.ttl_seconds),
        max_entries=int(_env_float(env, _ENV_CACHE_MAX_SIZE, config.cache.max_entries)),
    )

    retry = RetryConfig(
        max_retries=int(_env_float(env, _ENV_MAX_RETRIES, config.retry.max_retries)),
        base_delay=_env_float(env, _ENV_BASE_DELAY_MS, config.retry.base_delay * 1000) / 1000,
        max_delay=_env_float(env, _ENV_MAX_DELAY_MS, config.retry.max_delay * 1000) / 1000,
    )

    return replace(
        config,
        region=region,
        models=models,
        cost_limits=cost_limits,
        cache=cache,
        retry=retry,
    )


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> GatewayConfig:
    """Load defaults, then the optional YAML file, then environment overrides."""
    config = default_gateway_config()
    if path is not None:
        config = load_gateway_config(path, base=config)
    return apply_env_overrides(config, environ)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


def _coerce_like(raw: str, current: Any, name: str) -> Any:
    """Parse ``raw`` into the type of the existing default value."""
    try:
        if isinstance(current, bool):
            return raw.strip().lower() not in ("false", "0", "no")
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} has invalid value {raw!r}")
    return raw

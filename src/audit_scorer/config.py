"""Centralized configuration management for the audit scorer."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class DimensionWeightsConfig(BaseModel):
    """Weights of each dimension in the global score.

    They should sum to 1.0. The missing-data penalty is applied after
    weighting.
    """
    financier: float = Field(0.35, description="Weight of the financial dimension")
    operationnel: float = Field(0.25, description="Weight of the operational dimension")
    commercial: float = Field(0.20, description="Weight of the commercial dimension")
    strategique: float = Field(0.20, description="Weight of the strategic/risk dimension")


class DecisionConfig(BaseModel):
    """Truncation limits of the decision summary."""
    top_items: int = Field(
        3,
        description="Number of risks, levers, quick wins and structural actions kept"
    )
    max_recommendations: int = Field(
        5,
        description="Maximum number of quantified recommendations"
    )


class LoggingConfig(BaseModel):
    """Logging defaults used by the CLI."""
    level: str = Field("WARNING", description="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    rich: bool = Field(True, description="Use the Rich console handler")


class AuditScorerConfig(BaseModel):
    """Complete configuration for the audit scorer."""
    dimension_weights: DimensionWeightsConfig = Field(default_factory=DimensionWeightsConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# Global config instance
_config: Optional[AuditScorerConfig] = None


def get_config() -> AuditScorerConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    """
    global _config
    if _config is None:
        _config = AuditScorerConfig()
    return _config


def load_config(path: Path) -> AuditScorerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded AuditScorerConfig.
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = AuditScorerConfig.model_validate(data or {})
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = AuditScorerConfig()


def find_config_file() -> Optional[Path]:
    """Find an audit scorer configuration file.

    Looks in (order of priority):
    1. AUDIT_SCORER_CONFIG environment variable
    2. ./audit-config.yaml
    3. ./audit-config.yml
    4. ~/.config/audit-scorer/config.yaml
    """
    env_path = os.environ.get("AUDIT_SCORER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for name in ["audit-config.yaml", "audit-config.yml"]:
        path = Path(name)
        if path.exists():
            return path

    user_config = Path.home() / ".config" / "audit-scorer" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    data = AuditScorerConfig().model_dump()

    yaml_content = """# Audit Scorer Configuration
# ==========================
#
# Dimension weights of the global score, decision summary limits and
# logging defaults.
#
# Copy this file to one of these locations:
#   - ./audit-config.yaml (current directory)
#   - ~/.config/audit-scorer/config.yaml (user config)
#
# Or set the AUDIT_SCORER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)

"""
hotswap Configuration

Settings for the rewriter, the runtime contract with the component
framework and the host adapter, with:
- Environment-based configuration (HOTSWAP_ prefix)
- Type-safe settings with Pydantic
- A process-wide settings instance
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels for hotswap."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class RewriteSettings(BaseModel):
    """What the pattern matcher looks for in a unit of source text."""

    define_callee: str = Field(
        default="custom_elements.define",
        description="Dotted callee of direct registration calls",
    )
    decorator: str = Field(
        default="custom_element",
        description="Name of the registration decorator",
    )
    property_factories: List[str] = Field(
        default_factory=lambda: ["reactive"],
        description="Factories declaring observed reactive properties",
    )
    state_factories: List[str] = Field(
        default_factory=lambda: ["state"],
        description="Factories declaring local-only reactive state",
    )
    framework_modules: List[str] = Field(
        default_factory=lambda: ["elements"],
        description="Modules whose import marks a unit as relevant",
    )
    forward_dependencies: bool = Field(
        default=True,
        description="Forward relative imports to the runtime entry point",
    )
    line_map: bool = Field(
        default=True,
        description="Produce a generated-to-original line map",
    )

    @field_validator("define_callee", "decorator")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class FrameworkContract(BaseModel):
    """
    Names of the capabilities the engine uses on component classes and
    instances. Every hook is looked up defensively; a missing one is skipped.
    """

    render_request: str = "request_update"
    teardown_hook: str = "disconnected_callback"
    render_root: str = "render_root"
    style_mount: str = "adopted_style_sheets"
    reactive_metadata: str = "reactive_properties"
    observed_attributes: str = "observed_attributes"
    styles: str = "styles"
    cache_attributes: List[str] = Field(
        default_factory=lambda: ["reactive_properties", "styles"],
    )
    finalized_markers: List[str] = Field(
        default_factory=lambda: ["_finalized", "finalized"],
    )


class HotSwapSettings(BaseSettings):
    """
    Main hotswap configuration.

    Environment variables are prefixed with HOTSWAP_
    (e.g., HOTSWAP_LOG_LEVEL=DEBUG, HOTSWAP_REWRITE__DECORATOR=component).
    """

    enabled: bool = True
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = False
    configure_logging: bool = False

    include: List[str] = Field(
        default_factory=lambda: ["*.py"],
        description="Unit id patterns to rewrite",
    )
    exclude: List[str] = Field(
        default_factory=list,
        description="Unit id patterns never rewritten",
    )
    skip_third_party: bool = Field(
        default=True,
        description="Skip units living in site-packages or dist-packages",
    )

    rewrite: RewriteSettings = Field(default_factory=RewriteSettings)
    contract: FrameworkContract = Field(default_factory=FrameworkContract)

    model_config = {
        "env_prefix": "HOTSWAP_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# Global settings instance (lazy loaded)
_settings: Optional[HotSwapSettings] = None


def get_settings() -> HotSwapSettings:
    """Get the global hotswap settings instance."""
    global _settings
    if _settings is None:
        _settings = HotSwapSettings()
    return _settings


def set_settings(settings: HotSwapSettings) -> None:
    """Set the global hotswap settings instance."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset the global settings to default."""
    global _settings
    _settings = None

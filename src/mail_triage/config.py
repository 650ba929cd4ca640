"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application. There are two layers:

    - :class:`Settings` holds deployment concerns (Graph credentials, where the
      engine config lives, log level). It is loaded from the environment /
      ``.env`` via ``pydantic-settings``.
    - :class:`EngineConfig` holds everything the classification engine needs
      (prompt, categories, rules, rate limits, retry policy, message
      templates). It is read once from a JSON file and validated into a typed
      model tree, so no component walks untyped config at call time.

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`
    - :func:`load_engine_config` -> returns :class:`EngineConfig`
        - :func:`parse_engine_config`
            - :meth:`EngineConfig.model_validate`

Operational notes:
    - The JSON file uses PascalCase keys (``ClassificationSettings``,
      ``RateLimiting``...). Python code uses the snake_case attribute names;
      both spellings are accepted when constructing models in tests.
    - Numeric knobs that are ``0`` mean "use the built-in default", matching
      how the config file has always been written.
    - Any problem while loading is raised as
      :class:`~src.mail_triage.errors.ConfigurationError`.
"""

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_pascal
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = [
    "-----Original Message-----",
    "From:",
    "On ",
    "________________________________",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is intentionally flat and human-editable via `.env`.
    Most fields map directly to environment variables.

    Attributes:
        azure_client_id: Azure AD application client ID.
        azure_client_secret: Azure AD application client secret.
        azure_tenant_id: Azure AD tenant ID.
        classifier_config_path: Path of the JSON engine configuration.
        classifier_api_key: Optional API key overriding ``ApiSettings.ApiKey``.
        mailbox_folder: Well-known name or id of the folder to classify.
        email_batch_size: Default maximum number of messages per batch.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Azure AD Configuration
    azure_client_id: str = Field(default="", description="Azure AD application client ID")
    azure_client_secret: Optional[str] = Field(
        default=None, description="Azure AD application client secret (for client credentials flow)"
    )
    azure_tenant_id: str = Field(
        default="consumers", description="Azure AD tenant ID (consumers for personal accounts)"
    )
    outlook_account_username: Optional[str] = Field(
        default=None,
        description=(
            "Preferred Outlook account username to select from the MSAL token cache. "
            "If omitted, the first cached account is used."
        ),
    )
    use_client_credentials: bool = Field(
        default=False,
        description=(
            "Use client credentials flow instead of device code flow. "
            "Requires an organizational tenant (not 'consumers')."
        ),
    )
    target_user_principal_name: Optional[str] = Field(
        default=None,
        description="Mailbox owner (UPN) when using application permissions.",
    )
    token_cache_path: Path = Field(
        default=Path.home() / ".mail_triage_token_cache.json",
        description="Where the MSAL token cache is persisted",
    )

    # Engine configuration
    classifier_config_path: Path = Field(
        default=Path("config.json"), description="Path of the engine JSON configuration"
    )
    classifier_api_key: Optional[str] = Field(
        default=None, description="Overrides ApiSettings.ApiKey from the config file"
    )

    # Processing Settings
    mailbox_folder: str = Field(default="inbox", description="Folder to classify")
    email_batch_size: Optional[int] = Field(
        default=None, ge=1, description="Maximum unread messages per batch (None = all)"
    )
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()


class _ConfigModel(BaseModel):
    """Base for engine config sections: PascalCase JSON keys, immutable."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class MatchType(str, Enum):
    """How the condition lists of a rule combine."""

    ANY = "ANY"
    ALL = "ALL"


class ApiSettings(_ConfigModel):
    """Endpoint, credentials and request templates for the AI service."""

    api_key: str = ""
    api_endpoint: str = ""
    model_name: str = ""
    timeout_seconds: int = Field(default=0, ge=0)
    message_role: str = "user"
    response_content_path: str = ""
    request_headers: dict[str, str] = Field(default_factory=dict)
    request_parameters: dict[str, Any] = Field(default_factory=dict)


class EmailSettings(_ConfigModel):
    """Thread separators and signature markers shared by all features."""

    message_separators: list[str] = Field(default_factory=list)
    signature_prefixes: list[str] = Field(default_factory=list)


class ClassificationDefinition(_ConfigModel):
    """Visual treatment applied for one classification key."""

    category_prefix: str = ""
    importance: str = ""
    flag_icon: str = ""
    flag_request: str = ""
    subject_prefix: str = ""
    category_color: str = ""


class RateLimitSettings(_ConfigModel):
    """Request pacing and cooldown policy.

    A ``min_delay_between_requests_ms`` of ``0`` (the default) means 1500 ms.
    """

    requests_per_minute: int = Field(default=0, ge=0)
    min_delay_between_requests_ms: int = Field(default=0, ge=0)
    request_timeout_seconds: int = Field(default=0, ge=0)
    base_cooldown_seconds: int = Field(default=0, ge=0)
    max_cooldown_minutes: int = Field(default=0, ge=0)
    max_consecutive_failures: int = Field(default=0, ge=0)


class RuleConditions(_ConfigModel):
    match_type: MatchType = MatchType.ANY
    subject_keywords: list[str] = Field(default_factory=list)
    sender_domains: list[str] = Field(default_factory=list)
    sender_addresses: list[str] = Field(default_factory=list)
    body_keywords: list[str] = Field(default_factory=list)

    @field_validator("match_type", mode="before")
    @classmethod
    def _coerce_match_type(cls, value: Any) -> MatchType:
        # Anything other than ALL behaves as ANY.
        if isinstance(value, MatchType):
            return value
        if isinstance(value, str) and value.strip().upper() == "ALL":
            return MatchType.ALL
        return MatchType.ANY


class ClassificationRule(_ConfigModel):
    name: str = ""
    classification: str
    priority: int = 100
    conditions: RuleConditions = Field(default_factory=RuleConditions)


class PreProcessingRules(_ConfigModel):
    enable_rule_based_classification: bool = False
    rules: list[ClassificationRule] = Field(default_factory=list)


class DynamicPrompts(_ConfigModel):
    include_available_categories: bool = False
    prompt_template: Optional[str] = None
    category_descriptions: dict[str, str] = Field(default_factory=dict)


class AiClassificationSettings(_ConfigModel):
    enable_ai_classification: bool = True
    use_ai_for_unmatched: bool = True
    dynamic_prompts: DynamicPrompts = Field(default_factory=DynamicPrompts)


class EmailProcessingSettings(_ConfigModel):
    content_separators: list[str] = Field(default_factory=list)
    max_body_length: int = Field(default=0, ge=0)


class ClassificationMessages(_ConfigModel):
    """User-facing templates. Placeholders are ``{NAME}`` tokens."""

    no_unread_emails: str = "No unread emails found in {FOLDER}"
    confirm_classification: str = (
        "Process {COUNT} unread emails in {FOLDER}?\n\n"
        "AI Classification: {AI_STATUS}\n"
        "Rule-based Classification: {RULE_STATUS}"
    )
    completion_summary: str = (
        "Classification complete.\n\n"
        "Processed: {PROCESSED}\nSuccessful: {SUCCESS}\nFailed: {FAILED}"
    )
    wait_status: str = "{REASON}: waiting {TIME}"


class DebugSettings(_ConfigModel):
    content_preview_length: int = Field(default=100, ge=1)
    truncation_indicator: str = "..."


class BackoffMultipliers(_ConfigModel):
    timeout_retry_base: int = Field(default=0, ge=0)
    error_retry_base: int = Field(default=0, ge=0)
    exponential_base: int = Field(default=0, ge=0)
    extended_cooldown_factor: int = Field(default=0, ge=0)


class RetrySettings(_ConfigModel):
    max_attempts: int = Field(default=3, ge=1)
    default_fallback_order: list[str] = Field(default_factory=list)
    backoff_multipliers: BackoffMultipliers = Field(default_factory=BackoffMultipliers)


class ContentSettings(_ConfigModel):
    ai_tag_patterns: list[str] = Field(default_factory=list)
    fallback_content_template: str = "Subject: {SUBJECT}"
    classification_keywords: list[str] = Field(default_factory=list)
    empty_content_fallback_length: int = Field(default=200, ge=1)

    @field_validator("ai_tag_patterns")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid AI tag pattern {pattern!r}: {e}") from e
        return patterns


class ApiResponseSettings(_ConfigModel):
    fallback_content_paths: list[str] = Field(default_factory=list)
    no_content_indicators: list[str] = Field(default_factory=list)
    rate_limit_markers: list[str] = Field(
        default_factory=lambda: ["rate limit", "too many requests"]
    )


class ProgressSettings(_ConfigModel):
    status_template: str = "{CURRENT}/{TOTAL}: {SUBJECT}"
    cooldown_template: str = "  [Cooldown {TIME}]"


class NormalizationSettings(_ConfigModel):
    """Synonym tables for the visual indicator values in definitions."""

    importance_synonyms: dict[str, str] = Field(default_factory=dict)
    flag_icon_synonyms: dict[str, str] = Field(default_factory=dict)
    category_color_synonyms: dict[str, str] = Field(default_factory=dict)
    default_importance: str = "normal"
    default_category_color: str = "none"


class ClassificationSettings(_ConfigModel):
    """Everything the classification engine reads."""

    prompt: str
    classifications: dict[str, ClassificationDefinition]
    rate_limiting: RateLimitSettings
    email_processing: EmailProcessingSettings
    messages: ClassificationMessages
    pre_processing_rules: PreProcessingRules = Field(default_factory=PreProcessingRules)
    ai_classification: AiClassificationSettings = Field(default_factory=AiClassificationSettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    content: ContentSettings = Field(default_factory=ContentSettings)
    api_response: ApiResponseSettings = Field(default_factory=ApiResponseSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt must not be empty")
        return value

    @field_validator("classifications")
    @classmethod
    def _at_least_one_class(
        cls, value: dict[str, ClassificationDefinition]
    ) -> dict[str, ClassificationDefinition]:
        if not value:
            raise ValueError("Classifications must define at least one class")
        return value

    @property
    def classification_keys(self) -> list[str]:
        """Configured keys in declaration order.

        Returns:
            list[str]: Classification keys.
        """
        return list(self.classifications)

    @property
    def rules_enabled(self) -> bool:
        rules = self.pre_processing_rules
        return rules.enable_rule_based_classification and bool(rules.rules)


class EngineConfig(_ConfigModel):
    """Root of the engine configuration file."""

    api_settings: ApiSettings = Field(default_factory=ApiSettings)
    email_settings: EmailSettings = Field(default_factory=EmailSettings)
    classification_settings: ClassificationSettings

    @model_validator(mode="after")
    def _check_ai_endpoint(self) -> "EngineConfig":
        if self.classification_settings.ai_classification.enable_ai_classification:
            if not self.api_settings.api_endpoint.strip():
                raise ValueError("ApiSettings.ApiEndpoint is required when AI classification is enabled")
            if not self.api_settings.api_key.strip():
                raise ValueError("ApiSettings.ApiKey is required when AI classification is enabled")
        return self


def _describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one readable line per problem."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "config"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(problems)


def parse_engine_config(
    data: Union[dict[str, Any], Any],
    api_key_override: Optional[str] = None,
) -> EngineConfig:
    """Validate decoded JSON into an :class:`EngineConfig`.

    Args:
        data: Decoded JSON document.
        api_key_override: API key replacing ``ApiSettings.ApiKey`` when set.

    Returns:
        EngineConfig: Validated configuration.

    Raises:
        ConfigurationError: If a required section is missing or a value is
            invalid.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be a JSON object")

    if data.get("ClassificationSettings") is None and data.get("classification_settings") is None:
        raise ConfigurationError("ClassificationSettings is missing.")

    if api_key_override:
        data = dict(data)
        api_section = dict(data.get("ApiSettings") or {})
        api_section["ApiKey"] = api_key_override
        data["ApiSettings"] = api_section

    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {_describe_validation_error(e)}") from e

    logger.debug(
        "Loaded engine config (classifications=%s, rules=%s)",
        len(config.classification_settings.classifications),
        len(config.classification_settings.pre_processing_rules.rules),
    )
    return config


def load_engine_config(
    path: Union[str, Path],
    api_key_override: Optional[str] = None,
) -> EngineConfig:
    """Read and validate the engine configuration file.

    Args:
        path: JSON file location.
        api_key_override: API key replacing ``ApiSettings.ApiKey`` when set.

    Returns:
        EngineConfig: Validated configuration.

    Raises:
        ConfigurationError: If the file is missing, empty, not JSON, or fails
            validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found at: {config_path}")

    text = config_path.read_text(encoding="utf-8")
    if not text.strip():
        raise ConfigurationError(f"Config file is empty: {config_path}")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"JSON parsing error in {config_path}: {e}") from e

    return parse_engine_config(data, api_key_override=api_key_override)

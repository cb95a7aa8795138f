"""Settings for the SMS one-time-passcode service."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


DEFAULT_MESSAGE_TEMPLATE = "{code}\nEnter this verification code when asked during the authentication process."


class Settings(BaseSettings):
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")

	# cm.com provider
	cm_product_token: Optional[str] = _env_field(None, "CM_PRODUCT_TOKEN", "OTP_API_KEY")
	cm_api_base: str = _env_field("https://api.cmtelecom.com", "CM_API_BASE")
	cm_gateway_base: str = _env_field("https://gw.cmtelecom.com", "CM_GATEWAY_BASE")
	otp_provider_timeout_seconds: float = _env_field(3.0, "OTP_PROVIDER_TIMEOUT_SECONDS")
	otp_http_proxy: Optional[str] = _env_field(None, "OTP_HTTP_PROXY")
	otp_push_app_key: Optional[str] = _env_field(None, "OTP_PUSH_APP_KEY")

	# Challenge defaults
	otp_verification: str = _env_field("delegated", "OTP_VERIFICATION")
	otp_originator: str = _env_field("CMdotcom", "OTP_ORIGINATOR")
	otp_mobile_attribute: str = _env_field("mobile", "OTP_MOBILE_ATTRIBUTE")
	otp_default_region: str = _env_field("NL", "OTP_DEFAULT_REGION")
	otp_valid_for_seconds: int = _env_field(600, "OTP_VALID_FOR_SECONDS")
	otp_code_length: int = _env_field(6, "OTP_CODE_LENGTH")
	otp_message_template: str = _env_field(DEFAULT_MESSAGE_TEMPLATE, "OTP_MESSAGE_TEMPLATE")
	otp_store_ttl_seconds: int = _env_field(3600, "OTP_STORE_TTL_SECONDS")

	# Where the enclosing authentication pipeline resumes after a verified code
	pipeline_resume_url: str = _env_field("http://localhost:8080/auth/resume", "PIPELINE_RESUME_URL")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
	obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
	service_name: str = _env_field("smsotp", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	@field_validator("otp_verification", mode="before")
	def _lower_strategy(cls, value):  # type: ignore[override]
		if isinstance(value, str):
			return value.strip().lower()
		return value

	@field_validator("otp_default_region", mode="before")
	def _upper_region(cls, value):  # type: ignore[override]
		if isinstance(value, str):
			return value.strip().upper()
		return value

	@field_validator("otp_message_template", mode="before")
	def _unescape_newlines(cls, value):  # type: ignore[override]
		# .env files carry the template on one line
		if isinstance(value, str):
			return value.replace("\\n", "\n")
		return value


def _normalise_level(level: str) -> str:
	return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)

#!/usr/bin/env python3
"""Configuration management for Naina HealthScribe.

This module provides configuration using Pydantic settings with support for
environment variables, a ``.env`` file and explicit overrides. Settings are
loaded once by the composition root (:mod:`healthscribe.app`) and passed to
the components that need them; there is no module-level settings cache.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

import boto3
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

ENV_PREFIX = "HEALTHSCRIBE_"

REQUIRED_FIELDS = (
    "aws_region",
    "user_pool_id",
    "user_pool_client_id",
    "identity_pool_id",
    "storage_bucket",
    "healthscribe_service_role_arn",
    "api_url",
)


class HealthScribeSettings(BaseSettings):
    """Main configuration class for HealthScribe.

    Args:
        aws_region: AWS region for every service client.
        aws_profile: Optional named AWS profile.
        user_pool_id: Cognito User Pool ID.
        user_pool_client_id: Cognito User Pool web client ID.
        identity_pool_id: Cognito Identity Pool ID.
        storage_bucket: S3 bucket for uploaded audio and job output.
        healthscribe_service_role_arn: Role the transcription service assumes.
        api_url: Base URL of the preferences API.
        patients_table_name: DynamoDB table holding patient records.
        upload_key_prefix: Key prefix for uploaded encounter audio.
        local_storage_path: Directory for the on-device preferences mirror.
        authenticated_user_id: Cognito ``sub`` of the signed-in provider.
        http_timeout: Optional timeout for preferences API calls, in seconds.
        log_level: Application log level.
        log_format: Logging format string.
        debug: Debug mode flag.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Configuration
    aws_region: str = Field(default="us-east-1", description="AWS region for services")

    aws_profile: Optional[str] = Field(
        default=None, description="AWS profile (None uses the default chain)"
    )

    # Authentication Configuration
    user_pool_id: Optional[str] = Field(
        default=None, description="AWS Cognito User Pool ID"
    )
    user_pool_client_id: Optional[str] = Field(
        default=None, description="AWS Cognito App Client ID"
    )
    identity_pool_id: Optional[str] = Field(
        default=None, description="AWS Cognito Identity Pool ID"
    )
    authenticated_user_id: Optional[str] = Field(
        default=None, description="Cognito sub of the signed-in provider"
    )

    # Storage Configuration
    storage_bucket: Optional[str] = Field(
        default=None, description="S3 bucket for audio uploads and job output"
    )

    upload_key_prefix: str = Field(
        default="uploads/HealthScribeDemo/",
        description="Key prefix for uploaded encounter audio",
    )

    local_storage_path: str = Field(
        default="~/.healthscribe",
        description="Directory for the on-device preferences mirror",
    )

    patients_table_name: str = Field(
        default="NainaHealthScribe-Patients",
        description="DynamoDB table for patient records",
    )

    # Transcription Configuration
    healthscribe_service_role_arn: Optional[str] = Field(
        default=None, description="IAM role ARN assumed by the transcription service"
    )

    # Preferences API Configuration
    api_url: Optional[str] = Field(
        default=None, description="Base URL of the preferences API"
    )

    http_timeout: Optional[float] = Field(
        default=None, gt=0, description="Preferences API timeout in seconds"
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Logging format string",
    )

    # Development Configuration
    debug: bool = Field(default=False, description="Enable debug mode")

    @classmethod
    def load(cls, **kwargs) -> "HealthScribeSettings":
        """
        Load settings with optional overrides.

        Args:
            **kwargs: Override values for settings

        Returns:
            HealthScribeSettings instance
        """
        return cls(**kwargs)

    def missing_required(self) -> List[str]:
        """Return the environment variable names of unset required values."""
        missing: List[str] = []
        for field_name in REQUIRED_FIELDS:
            value = getattr(self, field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(f"{ENV_PREFIX}{field_name.upper()}")
        return missing

    def validate_required(self) -> "HealthScribeSettings":
        """Raise ConfigurationError when any required value is missing.

        Returns:
            The settings instance, for chaining.

        Raises:
            ConfigurationError: Lists every missing environment variable.
        """
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=missing,
            )
        return self

    @property
    def local_storage_dir(self) -> Path:
        """Expanded local storage directory."""
        return Path(self.local_storage_path).expanduser()

    def get_storage_config(self) -> dict:
        """Get configuration for the audio storage backend."""
        return {
            "backend_type": "s3",
            "bucket_name": self.storage_bucket,
        }

    def get_boto3_session(self) -> boto3.Session:
        """Create a boto3 session for the configured profile and region."""
        if self.aws_profile:
            return boto3.Session(
                profile_name=self.aws_profile, region_name=self.aws_region
            )
        return boto3.Session(region_name=self.aws_region)


def load_settings(**kwargs) -> HealthScribeSettings:
    """Load and validate settings.

    Args:
        **kwargs: Fields to override on top of the environment.

    Returns:
        HealthScribeSettings: A validated settings object.

    Raises:
        ConfigurationError: If any required value is missing or invalid.
    """
    try:
        settings = HealthScribeSettings.load(**kwargs)
    except ValidationError as e:
        invalid = sorted(
            {
                f"{ENV_PREFIX}{str(error['loc'][0]).upper()}"
                for error in e.errors()
                if error["loc"]
            }
        )
        raise ConfigurationError(
            f"Invalid configuration values: {', '.join(invalid)}", missing=invalid
        ) from e
    return settings.validate_required()

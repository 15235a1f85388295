"""Runtime configuration read from environment variables."""

import os

from pydantic import BaseModel, ConfigDict, Field

from .models.enums import PartialApplicationPolicy

_settings_instance: "CoreSettings | None" = None


class CoreSettings(BaseModel):
    """Settings shared by the availability, state machine and checkout services."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    table_prefix: str = Field(default="resort-dev", description="DynamoDB table name prefix")
    event_bus_name: str | None = Field(
        default=None, description="EventBridge bus for transition events"
    )
    event_source: str = "resort.core"
    partial_policy: PartialApplicationPolicy = PartialApplicationPolicy.CONTINUE
    max_reservation_attempts: int = Field(default=5, ge=1)
    max_redemption_attempts: int = Field(default=5, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CoreSettings":
        """Build settings from the process environment.

        Returns:
            CoreSettings populated from ENVIRONMENT, DYNAMODB_TABLE_PREFIX,
            RESORT_EVENT_BUS_NAME, RESORT_EVENT_SOURCE, CHECKOUT_PARTIAL_POLICY,
            RESERVATION_MAX_ATTEMPTS, REDEMPTION_MAX_ATTEMPTS and LOG_LEVEL.
        """
        environment = os.getenv("ENVIRONMENT", "dev")
        return cls(
            environment=environment,
            # Allow override via DYNAMODB_TABLE_PREFIX for testing
            table_prefix=os.getenv("DYNAMODB_TABLE_PREFIX", f"resort-{environment}"),
            event_bus_name=os.getenv("RESORT_EVENT_BUS_NAME") or None,
            event_source=os.getenv("RESORT_EVENT_SOURCE", "resort.core"),
            partial_policy=PartialApplicationPolicy(
                os.getenv("CHECKOUT_PARTIAL_POLICY", PartialApplicationPolicy.CONTINUE.value)
            ),
            max_reservation_attempts=int(os.getenv("RESERVATION_MAX_ATTEMPTS", "5")),
            max_redemption_attempts=int(os.getenv("REDEMPTION_MAX_ATTEMPTS", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def get_settings() -> CoreSettings:
    """Get or create the singleton settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = CoreSettings.from_env()
    return _settings_instance


def reset_settings() -> None:
    """Reset the singleton instance (for testing only)."""
    global _settings_instance
    _settings_instance = None

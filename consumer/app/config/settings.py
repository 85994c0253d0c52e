from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    events_backend: str = Field("sqs", validation_alias="EVENTS_BACKEND")

    # Required by initialize(); allowed empty here so the check happens before any network call.
    topic_name: str = Field("", validation_alias="TOPIC_NAME")
    queue_prefix: str = Field("", validation_alias="QUEUE_PREFIX")
    queue_loader: str = Field("", validation_alias="QUEUE_LOADER")

    listen_interval_ms: int = Field(300, validation_alias="LISTEN_INTERVAL_MS")
    process_interval_ms: int = Field(0, validation_alias="PROCESS_INTERVAL_MS")
    max_number_of_messages: int = Field(10, ge=1, validation_alias="MAX_NUMBER_OF_MESSAGES")
    visibility_timeout: int = Field(120, ge=0, validation_alias="VISIBILITY_TIMEOUT")
    wait_time_seconds: int = Field(0, ge=0, validation_alias="WAIT_TIME_SECONDS")

    throw_error: bool = Field(False, validation_alias="THROW_ERROR")
    retry_interval_ms: int = Field(5000, validation_alias="RETRY_INTERVAL_MS")
    retry_attempts: int = Field(3, ge=1, validation_alias="RETRY_ATTEMPTS")

    aws_region: str = Field("us-east-1", validation_alias="AWS_REGION")
    aws_endpoint_url: str = Field("", validation_alias="AWS_ENDPOINT_URL")
    aws_access_key_id: str = Field("", validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("", validation_alias="AWS_SECRET_ACCESS_KEY")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @property
    def listen_interval_seconds(self) -> float:
        return self.listen_interval_ms / 1000

    @property
    def process_interval_seconds(self) -> float:
        return self.process_interval_ms / 1000

    @property
    def retry_interval_seconds(self) -> float:
        return self.retry_interval_ms / 1000

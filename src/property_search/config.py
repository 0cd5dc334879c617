"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROPERTY_SEARCH_",
        extra="ignore",
    )

    # Outbound HTTP (shared by every Rightmove request in a run)
    http_max_parallel_connections: int = Field(
        default=16,
        ge=1,
        description="Maximum number of in-flight requests per HTTP client",
    )
    http_max_retry_count: int = Field(
        default=3,
        ge=0,
        description="Retries for transient failures (network errors, 5xx, 408, 429)",
    )
    http_retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for exponential backoff between transient retries",
    )
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # Rightmove search
    search_page_retry_count: int = Field(
        default=3,
        ge=0,
        description="Retries for a search page that returns a non-2xx status",
    )
    search_page_retry_delay_seconds: float = Field(default=1.0, ge=0)
    max_beds: int = Field(
        default=3,
        ge=0,
        description="Bedroom counts 0 (studio) through max_beds are searched",
    )
    search_radius: float = Field(
        default=0.25,
        ge=0,
        description="Search radius in miles around each station",
    )

    # PropertyLog price history (optional, empty user disables it)
    propertylog_user: SecretStr = Field(
        default=SecretStr(""),
        description="PropertyLog API user identifier",
    )
    propertylog_max_parallel_connections: int = Field(default=4, ge=1)
    propertylog_max_retry_count: int = Field(default=5, ge=0)
    propertylog_retry_delay_seconds: float = Field(default=10.0, ge=0)

    # Reference data files for the schools import
    schools_csv_path: str = Field(default="assets/2020-2021_england_school_information.csv")
    postcodes_csv_path: str = Field(default="assets/ukpostcodes.csv")

    # Web API
    web_host: str = Field(default="0.0.0.0", description="Web server host")
    web_port: int = Field(default=3000, description="Web server port")
    static_dir: str = Field(
        default="",
        description="Directory of the built front end, served at / when set",
    )

    # Database
    database_path: str = Field(default="data/uk-property-search.db")

    @property
    def data_dir(self) -> str:
        """Return the directory containing the database."""
        return str(Path(self.database_path).parent)

    @property
    def price_history_enabled(self) -> bool:
        """Whether PropertyLog credentials are configured."""
        return bool(self.propertylog_user.get_secret_value())

    def get_bed_counts(self) -> list[int]:
        """Bedroom counts searched for every station."""
        return list(range(self.max_beds + 1))

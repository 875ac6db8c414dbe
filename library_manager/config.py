import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class ListingOptions:
    """Listing parameters shared by the query layer and pagination links."""

    page_size: int = 5

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Listing and circulation settings
    page_size: int = int(os.getenv("PAGE_SIZE", "5"))
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "7"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Manager")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def listing_options(self) -> ListingOptions:
        return ListingOptions(page_size=self.page_size)


settings = Settings()

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Lore Drive Sync"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Campaign wiki sync backend (Google Drive -> embeddings -> wiki_content)"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./local.db"

    SUPABASE_DATABASE_NAME: str = "postgres"
    SUPABASE_DATABASE_USER: str = "postgres"
    SUPABASE_DATABASE_PASSWORD: str = ""
    SUPABASE_DATABASE_HOST: str = ""
    SUPABASE_DATABASE_PORT: int = 5432

    # Supabase REST settings
    SUPABASE_URL: str = Field(default="", description="Supabase project URL (https://xxx.supabase.co)")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="", description="Supabase service role key (writes wiki_content)")

    # Where ingested documents live: "supabase" (REST) or "sql" (DATABASE_URL / local SQLite)
    WIKI_STORE_BACKEND: str = "supabase"
    WIKI_TABLE_NAME: str = "wiki_content"

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL for the SQL wiki store.

        Priority:
        1. Explicit DATABASE_URL (Postgres, SQLite, etc.)
        2. Supabase Postgres URL built from SUPABASE_* components
        3. Local SQLite fallback for development: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.SUPABASE_DATABASE_HOST and self.SUPABASE_DATABASE_HOST.strip() and self.SUPABASE_DATABASE_PASSWORD and self.SUPABASE_DATABASE_PASSWORD.strip():
            return (
                f"postgresql://{self.SUPABASE_DATABASE_USER}:{self.SUPABASE_DATABASE_PASSWORD}@"
                f"{self.SUPABASE_DATABASE_HOST}:{self.SUPABASE_DATABASE_PORT}/{self.SUPABASE_DATABASE_NAME}?sslmode=require"
            )
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./local.db"

    # OpenAI embedding settings
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-ada-002"  # 1536 dims, matches wiki_content.embedding
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    # Google Drive settings
    GOOGLE_DRIVE_API_KEY: str = ""
    GOOGLE_DRIVE_FOLDER_ID: str = ""
    GOOGLE_DRIVE_API_URL: str = "https://www.googleapis.com/drive/v3"
    GOOGLE_DRIVE_PAGE_SIZE: int = 100
    GOOGLE_DRIVE_TIMEOUT_SECONDS: float = 30.0

    # Drive rate limiting (seconds unless noted)
    DRIVE_BASE_DELAY: float = 1.0
    DRIVE_MAX_DELAY: float = 30.0
    DRIVE_BACKOFF_FACTOR: float = 1.5
    DRIVE_RECOVERY_FACTOR: float = 0.9
    DRIVE_SUCCESS_STREAK: int = 5
    DRIVE_MAX_JITTER: float = 2.0
    DRIVE_MAX_RETRIES: int = 3
    DRIVE_RETRY_BASE_DELAY: float = 2.0

    # Sync run limits
    SYNC_FILE_EXTENSION: str = ".md"
    SYNC_MAX_FILES_DEFAULT: int = 50
    SYNC_MAX_FILES_MISSING_DEFAULT: int = 25
    SYNC_MAX_API_CALLS: int = 200
    SYNC_BUDGET_THRESHOLD: float = 0.8
    SYNC_INCREMENTAL_DAYS: int = 7
    SYNC_MIN_CONTENT_LENGTH: int = 20
    SYNC_MAX_CONTENT_CHARS: int = 8000
    SYNC_MAX_ERRORS_REPORTED: int = 20
    SYNC_MAX_PROCESSED_REPORTED: int = 50


settings = Settings()

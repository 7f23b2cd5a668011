from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: str = "sqlite:///./ephemeral_share.db"

    # JWT settings
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60

    # Storage settings
    STORAGE_BACKEND: str = "local"  # local | s3 (future)
    STORAGE_BASE_PATH: str = "data/blobs"
    MAX_UPLOAD_SIZE_MB: int = 100
    STORAGE_CHUNK_SIZE_KB: int = 64
    # Multipart boundaries and form fields on top of the file itself
    MULTIPART_OVERHEAD_BYTES: int = 64 * 1024

    # Transient failure handling
    STORAGE_RETRY_ATTEMPTS: int = 3
    STORAGE_RETRY_BASE_DELAY_SECONDS: float = 0.2
    UPLOAD_TIMEOUT_SECONDS: float = 600
    DOWNLOAD_TIMEOUT_SECONDS: float = 600
    RETRY_AFTER_SECONDS: int = 5

    # Expiry policy
    ANONYMOUS_DEFAULT_TTL_SECONDS: int = 5 * 60
    ANONYMOUS_DEFAULT_MAX_DOWNLOADS: int = 3
    ANONYMOUS_MAX_TTL_SECONDS: int = 7 * 24 * 60 * 60
    MAX_TTL_SECONDS: int = 365 * 24 * 60 * 60
    MAX_DOWNLOADS_LIMIT: int = 10_000

    # Expiry engine
    ENABLE_EXPIRY_SWEEP: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60
    DELETED_RETENTION_HOURS: int = 24
    STAGING_MAX_AGE_SECONDS: int = 60 * 60

    # Pydantic Settings的配置設定，用來控制類別如何讀取環境變數
    # "env_file": ".env"：從.env檔案讀取環境變數
    # "extra": "ignore"：環境變數裡有，但Settings類別沒定義的欄位直接忽略
    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def storage_chunk_size(self) -> int:
        return self.STORAGE_CHUNK_SIZE_KB * 1024


settings = Settings()

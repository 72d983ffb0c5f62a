from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    database_url: str

    # TMDB upstream
    tmdb_api_key: str | None = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_image_base_url: str = "https://image.tmdb.org/t/p/w500"
    tmdb_language: str = "de-DE"
    tmdb_timeout_seconds: float = 10.0
    tmdb_search_ttl_seconds: int = 60
    tmdb_details_ttl_seconds: int = 3600

    upload_path: str = "images"
    max_image_bytes: int = 5 * 1024 * 1024

    # 100 requests per minute per IP, idle clients swept every 5 minutes
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: float = 60
    rate_limit_sweep_interval_seconds: float = 300

    cors_origins: list[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8080",
        "http://localhost:8082",
        "http://example.com",
    ]
    sbom_path: str = "sbom.json"
    log_level: str = "INFO"

settings = Settings()

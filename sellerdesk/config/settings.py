"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Marketplace OAuth app
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""

    # Upstream marketplace API
    marketplace_api_url: str = "https://api.mercadolibre.com"
    marketplace_auth_url: str = "https://auth.mercadolivre.com.br/authorization"
    upstream_timeout_seconds: float = 20.0
    question_max_age_days: int = 90
    item_batch_size: int = 20  # upstream bulk lookup caps ids per call
    item_cache_ttl_seconds: int = 6 * 60 * 60

    # Document store
    document_store_backend: str = "github"  # "github" | "local"
    github_token: str = ""
    github_owner: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    github_qr_path: str = "quick_replies.json"
    github_stores_path: str = "stores_ml.json"
    snapshot_dir: str = ".snapshots"  # Empty = no local snapshot
    document_cache_ttl_seconds: float = 5.0

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def github_configured(self) -> bool:
        """True when the remote document host can actually be reached."""
        return bool(self.github_token and self.github_owner and self.github_repo)


@lru_cache
def get_settings() -> Settings:
    return Settings()

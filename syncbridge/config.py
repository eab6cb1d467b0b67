"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./syncbridge.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    # Public base URL of this service (used to recognise our own webhooks on unsync).
    public_url: str | None = None

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, management routes are protected by HTTP Basic auth.
    # /health and the two webhook endpoints stay open; they carry their own verification.
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    # Credentials
    # Global overrides: when set, these win over the per-sync encrypted keys.
    linear_api_key: str | None = None
    github_api_key: str | None = None
    # Used for GitHub senders that have no sync of their own (outside contributors).
    linear_application_admin_key: str | None = None
    # Fernet key for the credential vault. Falls back to a key file when unset.
    encryption_key: str | None = None
    encryption_key_path: str = "./data/encryption.key"

    # Webhook verification
    # Comma-separated list of addresses Linear delivers webhooks from.
    linear_webhook_ips: str = "35.231.147.226,35.243.134.228"
    # Honour X-Forwarded-For when the service sits behind a reverse proxy.
    trust_forwarded_for: bool = False

    # Loop prevention
    # Identities this service acts as; events authored by them are never re-propagated.
    linear_bot_user_id: str | None = None
    github_bot_login: str | None = None
    # Adding this label on GitHub pulls an existing issue into Linear.
    github_trigger_label: str = "linear"

    # Tracker APIs
    github_api_url: str = "https://api.github.com"
    linear_api_url: str = "https://api.linear.app/graphql"
    http_timeout_seconds: float = 10.0
    # Lifetime requested for signed Linear upload URLs embedded in GitHub bodies.
    linear_public_file_expiry_seconds: int = 604800

    # Maintenance
    # Re-render Linear image links on GitHub before they expire. 0 disables the job.
    image_refresh_interval_minutes: int = 1440

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def linear_ip_allowlist(self) -> set[str]:
        return {ip.strip() for ip in self.linear_webhook_ips.split(",") if ip.strip()}


settings = Settings()

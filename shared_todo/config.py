from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "sqlite+aiosqlite:///./shared_todo.db"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-18"
  build_sha: str = "dev"
  log_level: str = "INFO"
  create_tables_on_start: bool = True

  cookie_secure: bool = False
  cookie_domain: str | None = None
  session_ttl_days: int = 14

  rate_limit_signin_ip_per_minute: int = 60
  rate_limit_signin_email_per_minute: int = 20
  redis_url: str | None = None

  require_email_verification: bool = False
  default_timezone: str = "UTC"
  notifications_page_size: int = 20

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,testserver"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Task API
    host: str = "127.0.0.1"
    port: int = 9000
    log_level: str = "INFO"
    tasks_table: str = "Tasks"
    aws_region: str = "us-east-2"
    dynamodb_endpoint_url: str = ""
    allowed_origin: str = "http://localhost:5173"

    # Client companion
    client_port: int = 5173
    api_base_url: str = "http://127.0.0.1:9000"
    auth_domain: str = ""
    auth_client_id: str = ""
    auth_scope: str = "openid email"
    auth_redirect_uri: str = ""
    auth_logout_uri: str = ""
    session_file: Path = Path(".taskvault-session.json")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def redirect_uri(self) -> str:
        return self.auth_redirect_uri or f"http://localhost:{self.client_port}/auth/callback"

    @property
    def logout_uri(self) -> str:
        return self.auth_logout_uri or f"http://localhost:{self.client_port}/"


@lru_cache
def get_settings() -> Settings:
    return Settings()

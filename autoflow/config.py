import warnings
from typing import Dict, Literal, Optional, Tuple

from pydantic import HttpUrl, computed_field, model_validator
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_empty=True, extra="ignore"
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Autoflow"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: Optional[HttpUrl] = None

    # Secret used to derive the credential vault key
    ENCRYPTION_KEY: str = "changethis"

    # Upper bound for every outbound call (OAuth, liveness checks, engine)
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Database configuration - defaults to SQLite
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "app"
    POSTGRES_PASSWORD: str = "changethis"
    POSTGRES_DB: str = "app"
    SQLITE_DB_PATH: str = "autoflow.db"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """
        Returns the database URI. Uses SQLite unless POSTGRES_SERVER is set.
        """
        if self.POSTGRES_SERVER:
            return str(
                MultiHostUrl.build(
                    scheme="postgresql+psycopg",
                    username=self.POSTGRES_USER,
                    password=self.POSTGRES_PASSWORD,
                    host=self.POSTGRES_SERVER,
                    port=self.POSTGRES_PORT,
                    path=self.POSTGRES_DB,
                )
            )
        return f"sqlite:///{self.SQLITE_DB_PATH}"

    # OAuth client registrations
    TYPEFORM_CLIENT_ID: Optional[str] = None
    TYPEFORM_CLIENT_SECRET: Optional[str] = None
    SLACK_CLIENT_ID: Optional[str] = None
    SLACK_CLIENT_SECRET: Optional[str] = None
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    OAUTH_REDIRECT_URI: str = "http://localhost:3000/oauth/callback"

    # Workflow engine (n8n REST API and optional MCP bridge)
    N8N_API_URL: Optional[str] = None
    N8N_API_KEY: Optional[str] = None
    N8N_MCP_URL: str = "http://n8n-mcp:3000"
    MCP_AUTH_TOKEN: Optional[str] = None

    # Chat completion provider used by the interpreter
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_DEFAULT_MODEL: str = "anthropic/claude-3.5-sonnet"

    @property
    def oauth_clients(self) -> Dict[str, Tuple[Optional[str], Optional[str]]]:
        google = (self.GOOGLE_CLIENT_ID, self.GOOGLE_CLIENT_SECRET)
        return {
            "typeform": (self.TYPEFORM_CLIENT_ID, self.TYPEFORM_CLIENT_SECRET),
            "slack": (self.SLACK_CLIENT_ID, self.SLACK_CLIENT_SECRET),
            "gmail": google,
            "google-sheets": google,
        }

    def oauth_client(self, service_id: str) -> Tuple[Optional[str], Optional[str]]:
        return self.oauth_clients.get(service_id, (None, None))

    def _check_default_secret(self, var_name: str, value: Optional[str]) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("ENCRYPTION_KEY", self.ENCRYPTION_KEY)
        if self.POSTGRES_SERVER:
            self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        return self


settings = Settings()  # type: ignore

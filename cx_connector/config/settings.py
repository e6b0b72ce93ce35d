# /cx_connector/config/settings.py

from typing import Any, Dict, List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cx_connector.errors import ConfigurationError


class Settings(BaseSettings):
    # Dialogflow CX agent
    dialogflowcx_project_id: str = ""
    dialogflowcx_location: str = "global"
    dialogflowcx_agent_id: str = ""
    dialogflowcx_environment: Optional[str] = None
    dialogflowcx_language_code: str = "en"

    # API access. The token must already be issued (e.g. `gcloud auth print-access-token`).
    dialogflowcx_access_token: Optional[str] = None
    dialogflowcx_api_endpoint: Optional[str] = None
    dialogflowcx_timeout: float = 30.0

    # Live session behavior
    dialogflowcx_query_params: Dict[str, Any] = {}
    dialogflowcx_welcome_text: List[Any] = []
    dialogflowcx_process_welcome_text_response: bool = False
    dialogflowcx_ignore_query_params_for_welcome: bool = False

    # Static coverage metadata (flows, pages, routes, used intents)
    dialogflowcx_extract_test_coverage: bool = False

    # API throttling: at most `api_rate_limit` calls per interval, `api_max_concurrency` in flight
    api_rate_limit: int = 99
    api_rate_interval_seconds: float = 60.0
    api_max_concurrency: int = 10

    # Observability
    environment: str = "production"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---------------- Validators ---------------- #

    @field_validator("dialogflowcx_location", mode="before")
    @classmethod
    def empty_location_means_global(cls, v):
        return v or "global"

    @field_validator("dialogflowcx_welcome_text", mode="before")
    @classmethod
    def wrap_single_welcome_text(cls, v):
        """A single welcome text is accepted as well as a list of them."""
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            return [v]
        return v

    @field_validator("api_rate_limit", "api_max_concurrency")
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError("API rate limit and concurrency must be at least 1")
        return v

    # ---------------- Derived values ---------------- #

    @property
    def agent_path(self) -> str:
        return (
            f"projects/{self.dialogflowcx_project_id}"
            f"/locations/{self.dialogflowcx_location}"
            f"/agents/{self.dialogflowcx_agent_id}"
        )

    @property
    def environment_path(self) -> Optional[str]:
        if not self.dialogflowcx_environment:
            return None
        return f"{self.agent_path}/environments/{self.dialogflowcx_environment}"

    @property
    def api_base_url(self) -> str:
        if self.dialogflowcx_api_endpoint:
            endpoint = self.dialogflowcx_api_endpoint.rstrip("/")
            if not endpoint.startswith("http"):
                endpoint = f"https://{endpoint}"
            return f"{endpoint}/v3"
        if self.dialogflowcx_location == "global":
            return "https://dialogflow.googleapis.com/v3"
        return f"https://{self.dialogflowcx_location}-dialogflow.googleapis.com/v3"


def validate_settings(settings_obj: Settings) -> Settings:
    if not settings_obj.dialogflowcx_project_id:
        raise ConfigurationError("DIALOGFLOWCX_PROJECT_ID is required")
    if not settings_obj.dialogflowcx_agent_id:
        raise ConfigurationError("DIALOGFLOWCX_AGENT_ID is required")
    return settings_obj


settings = Settings()

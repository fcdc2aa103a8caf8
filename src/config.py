from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""  # only needed for description enrichment

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    tasks_table: str = "tasks"
    transcripts_table: str = "transcripts"

    # Jira
    jira_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""
    jira_project_key: str = ""
    jira_story_points_field: str = "customfield_10166"

    # Teams
    teams_webhook_url: str = ""
    admin_panel_url: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 4096
    embedding_model: str = "text-embedding-3-small"

    # Pipeline
    existing_tasks_context_limit: int = 20
    status_confidence_threshold: float = 0.7
    max_concurrent_transcripts: int = 2
    enrich_descriptions: bool = True
    enrichment_top_k: int = 5
    enrichment_score_threshold: float = 0.3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()

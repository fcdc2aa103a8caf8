"""Build pipeline collaborators from settings at the process entry point."""

from __future__ import annotations

import logging
from functools import partial

from openai import OpenAI

from src.config import Settings
from src.extraction.llm import AnthropicLLMClient
from src.ingestion.embeddings import embed_texts
from src.ingestion.storage import TaskStore
from src.integrations.jira import JiraClient
from src.pipeline.enrichment import TranscriptContextEnricher
from src.pipeline.runner import Notifier, PipelineDeps, teams_notifier

logger = logging.getLogger(__name__)


def build_pipeline_deps(settings: Settings) -> PipelineDeps:
    """Construct every client once; optional collaborators are skipped when unconfigured."""
    llm = AnthropicLLMClient.from_settings(settings)
    store = TaskStore.from_settings(settings)

    tracker = None
    if settings.jira_url and settings.jira_project_key:
        tracker = JiraClient.from_settings(settings)
    else:
        logger.info("Jira is not configured; tasks are written to the store only")

    enricher = None
    if settings.enrich_descriptions and settings.openai_api_key:
        embed = partial(
            embed_texts,
            model=settings.embedding_model,
            client=OpenAI(api_key=settings.openai_api_key),
        )
        enricher = TranscriptContextEnricher(
            llm,
            embed=embed,
            top_k=settings.enrichment_top_k,
            score_threshold=settings.enrichment_score_threshold,
        )

    return PipelineDeps(llm=llm, store=store, tracker=tracker, enricher=enricher)


def build_notifier(settings: Settings) -> Notifier | None:
    if not settings.teams_webhook_url:
        return None
    return teams_notifier(settings.teams_webhook_url, settings.admin_panel_url)

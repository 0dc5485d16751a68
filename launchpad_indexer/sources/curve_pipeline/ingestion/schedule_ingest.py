"""
Celery-side wrapper for the on-demand "sync one token now" pass.

It goes through the same runner the CLI uses, so the scheduled run, the
CLI and this task share one code path and one run lock.
"""

from celery import shared_task
from launchpad_indexer.sources.curve_pipeline.ingestion.runner import sync_token as run_sync_token
import logging
log = logging.getLogger(__name__)


@shared_task(
    name="sync_token",
    queue="orchestrate",
    bind=True
)
def sync_token(self, token_id: int) -> dict:
    log.info(f"🔄  Syncing token {token_id}")
    return run_sync_token(token_id)

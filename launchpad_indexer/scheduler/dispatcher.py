from celery import shared_task
from launchpad_indexer.sources.curve_pipeline.config.settings import TokenFilter
from launchpad_indexer.sources.curve_pipeline.ingestion import runner
import logging
log = logging.getLogger(__name__)

# at most one run at a time: the Postgres advisory lock inside the runner
# turns overlapping beats into no-ops


@shared_task(name="run_pipeline", queue="dispatch", bind=True)
def run_pipeline(self):
    log.info("🔄  Starting pipeline run…")
    result = runner.run_pipeline(TokenFilter.from_env())
    if result.get("status") == "locked":
        log.info("🔒 Another run is active; skipping.")
    return result

# launchpad_indexer/main.py
import logging

from launchpad_indexer.sources.curve_pipeline.ingestion.cli_ingest import app
from launchpad_indexer.utils.shortname import ShortNameFilter

logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)s] %(shortname)s: %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(ShortNameFilter())
log = logging.getLogger(__name__)


def main():
    app()


if __name__ == "__main__":
    main()

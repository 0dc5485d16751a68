# celery_app.py  ─────────────────────────────────────────────────────────
from celery import Celery
from celery.schedules import crontab
import os
import logging
import logging.config

# ── 1.  Broker / backend  ────────────────────────────────────
CELERY_BROKER_URL    = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/0")
PIPELINE_SCHEDULE_MINUTES = os.getenv("PIPELINE_SCHEDULE_MINUTES", "*/10")

celery_app = Celery(
    "launchpad_tasks",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# ── 2.  Core config, Beat & routing ─────────────────────────
celery_app.conf.update(
    task_serializer       ='json',
    result_serializer     ='json',
    accept_content        =['json'],
    timezone              ='UTC',
    enable_utc            =True,

    # persistent schedules in Redis
    beat_scheduler        ="redbeat.RedBeatScheduler",
    redbeat_redis_url     =CELERY_BROKER_URL,

    task_routes = {
        "run_pipeline": {"queue": "dispatch"},
        "sync_token":   {"queue": "orchestrate"},
    },

    # recycle workers to avoid long-lived memory creep
    worker_max_tasks_per_child = 20,
)

# ── 3.  Beat schedule: one pipeline run per tick ─────────────
celery_app.conf.beat_schedule = {
    "pipeline-run": {
        "task": "run_pipeline",
        "schedule": crontab(minute=PIPELINE_SCHEDULE_MINUTES),
        "options": {"queue": "dispatch"},
    }
}

# ── 4.  Logging ────────────────────────────────────────────
LOGGING_CONFIG = {
    "version": 1,
    "formatters": {
        "custom": {
            "format": "[%(asctime)s] [%(levelname)s] %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "custom"},
    },
    "loggers": {
        # per-request chatter from the provider and oracle clients
        "web3": {"level": "WARNING"},
        "urllib3": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
    "root": {"level": "INFO", "handlers": ["console"]},
    "disable_existing_loggers": False,
}
celery_app.conf.worker_hijack_root_logger = False
logging.config.dictConfig(LOGGING_CONFIG)

# ── 5.  Task modules, imported so Celery registers them ─────
import launchpad_indexer.sources.curve_pipeline.ingestion.schedule_ingest
import launchpad_indexer.scheduler.dispatcher

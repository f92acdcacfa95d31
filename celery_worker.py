#!/usr/bin/env python3
"""
Starts a Celery worker for the notifications queue ("order ready" emails).

    python celery_worker.py
"""
import os

from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import NOTIFICATIONS_QUEUE, celery_app
    from core.logging import setup_logging

    setup_logging()
    celery_app.start([
        "worker",
        f"--queues={NOTIFICATIONS_QUEUE}",
        f"--loglevel={os.getenv('LOG_LEVEL', 'info').lower()}",
        f"--concurrency={os.getenv('CELERY_CONCURRENCY', '2')}",
        "--without-gossip",
        "--without-mingle",
    ])

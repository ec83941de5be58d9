"""Entry point for a local Celery worker with the embedded beat scheduler.

Production runs ``celery -A infrastructure.tasks worker`` and a separate
``celery -A infrastructure.tasks beat``; this runner starts both in one
process so the stale-payment sweep also runs during development.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(argv=["worker", "--beat", "--loglevel=INFO", "--hostname=payments@%h"])


if __name__ == "__main__":
    main()

"""Convenience entry point for running a Celery worker.

Most deployments invoke the standard Celery CLI
(`celery -A infrastructure.tasks.config.celery:celery_app worker -Q notifications,default`); keeping a
small script makes Procfile-style runners straightforward.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--hostname=worker@%h",
            "--queues=notifications,default",
            "--loglevel=INFO",
        ]
    )


if __name__ == "__main__":
    main()

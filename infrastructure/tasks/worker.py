"""Convenience entry point for running a Celery worker with embedded beat.

Production deployments usually run ``celery -A infrastructure.tasks worker``
and ``celery -A infrastructure.tasks beat`` separately.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--queues=default,low",
            "--hostname=worker@%h",
            "--loglevel=INFO",
        ]
    )


if __name__ == "__main__":
    main()

"""Run a single card sync from the command line, without the HTTP server.

Usage: python run_once.py
"""
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


if __name__ == "__main__":
    from cardsync.db import init_db
    from cardsync.main import build_container
    from cardsync.schemas import RunStatus

    container = build_container()
    init_db(container.engine)

    print(f"Running card sync against {container.settings.target_url}...")
    report = container.scheduler.run_now(trigger="cli")
    print(report.model_dump_json(indent=2))

    container.engine.dispose()
    raise SystemExit(0 if report.status == RunStatus.SUCCEEDED else 1)

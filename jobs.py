from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from study_tracker.config import load_settings
from study_tracker.db import Database
from study_tracker.jobs_runner import run_job
from study_tracker.logging_setup import setup_logging


def main() -> None:
    if len(sys.argv) != 2:
        raise SystemExit("Usage: python jobs.py reminders")

    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    run_job(sys.argv[1], db, settings)


if __name__ == "__main__":
    main()

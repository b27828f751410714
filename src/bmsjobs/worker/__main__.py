"""Allow ``python -m bmsjobs.worker``."""

from bmsjobs.worker.main import run

run()

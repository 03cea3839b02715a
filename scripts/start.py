"""Production startup script for the effectiveness scoring service.

Usage:
    python scripts/start.py          # migrate, then serve the API
    python scripts/start.py worker   # run the rq worker
"""

import os
import signal
import subprocess
import sys


def run_migrations() -> bool:
    """Run database migrations before starting the app."""
    print("Running database migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
        )
        print(result.stdout)
        print("Migrations complete.")
        return True
    except subprocess.CalledProcessError as e:
        print(f"Migration failed: {e.stderr}")
        return False


def start_api() -> None:
    """Start the FastAPI application with uvicorn."""
    port = os.getenv("PORT", "8000")
    workers = os.getenv("API_WORKERS", "1")
    host = os.getenv("API_HOST", "0.0.0.0")

    if workers != "1" and os.getenv("REFRESH_LOCK_BACKEND", "redis") == "local":
        print("REFRESH_LOCK_BACKEND=local only serializes refreshes within one process")

    print(f"Starting API server on {host}:{port} with {workers} worker(s)...")
    os.execvp(
        "uvicorn",
        [
            "uvicorn",
            "api.main:app",
            "--host",
            host,
            "--port",
            port,
            "--workers",
            workers,
            "--proxy-headers",
            "--forwarded-allow-ips",
            "*",
        ],
    )


def start_worker() -> None:
    print("Starting effectiveness worker...")
    os.execvp(sys.executable, [sys.executable, "-m", "worker.main"])


def signal_handler(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    print(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main() -> None:
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    if len(sys.argv) > 1 and sys.argv[1] == "worker":
        start_worker()
        return

    if os.getenv("RUN_MIGRATIONS", "true").lower() == "true" and not run_migrations():
        sys.exit(1)

    start_api()


if __name__ == "__main__":
    main()

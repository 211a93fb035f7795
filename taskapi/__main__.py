"""Entry point for running the task API via `python -m taskapi` or the `taskapi` script."""

from taskapi import TaskApiService
from taskapi.config import get_taskapi_config


def main() -> None:
    config = get_taskapi_config()
    url = config.TASKAPI.URL

    print(f"Starting Task Management API at {url}...")
    print("Press Ctrl+C to stop.")

    # SIGINT/SIGTERM are handled by the server as a graceful stop
    TaskApiService(url=url).start()


if __name__ == "__main__":
    main()

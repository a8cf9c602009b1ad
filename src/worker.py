from __future__ import annotations

import asyncio
import logging
import os

from src.adapters.api.dependencies import build_monitor_service
from src.adapters.aws import env_bool
from src.adapters.settings import MonitorRuntimeConfig


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    runtime = MonitorRuntimeConfig.from_env()
    monitor = build_monitor_service(runtime)

    if not env_bool("WORKER_LOOP", True):
        asyncio.run(monitor.tick())
        return

    logging.getLogger(__name__).info(
        "Detour worker polling every %.1fs", runtime.poll_interval_s
    )
    asyncio.run(monitor.run_forever(poll_interval_s=runtime.poll_interval_s))


if __name__ == "__main__":
    main()

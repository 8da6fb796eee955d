"""
Reporting agent entry point.

Usage:
    python -m agent -a localhost:8080 -p 2 -r 10
"""

import asyncio
import logging
import signal
import sys

from core.config import load_agent_config
from core.exceptions import ConfigurationError
from agent.runner import AgentRunner


def main() -> int:
    try:
        config = load_agent_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    runner = AgentRunner(config)

    async def run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.stop)
            except NotImplementedError:
                pass
        await runner.run()

    asyncio.run(run())
    return 0


if __name__ == "__main__":
    sys.exit(main())

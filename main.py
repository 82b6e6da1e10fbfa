"""
Main entrypoint: run the wallet sync loop (or any other CLI command).

    python main.py run
    python main.py add-wallet treasury 9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka

Env: SOLANA_RPC_URL (or HELIUS_API_KEY), WALLETSYNC_DB_URL / DATABASE_URL, COINVERA_APIKEY, etc.
"""

import sys

# Configure structured JSON logging before other imports that may log
from backend_walletsync.walletsync_logging import get_logger

logger = get_logger("main")


def main() -> int:
    from backend_walletsync.cli import main as cli_main

    argv = sys.argv[1:] or ["run"]
    logger.info("main_starting", command=argv[0])

    return cli_main(argv)


if __name__ == "__main__":
    sys.exit(main())

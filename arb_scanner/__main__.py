"""
Entry point for running the scanner.
Usage: python -m arb_scanner
"""

import asyncio
import sys

from .bot import run_bot
from .config import load_config_from_env
from .errors import FatalStartupError


def main() -> int:
    """Main entry point. Returns 0 on clean shutdown, 1 on startup failure."""
    try:
        config = load_config_from_env()

        errors = config.validate()
        if errors:
            print("Configuration errors:", file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            return 1

        asyncio.run(run_bot(config))
        return 0

    except KeyboardInterrupt:
        print("\nShutdown requested")
        return 0
    except FatalStartupError as e:
        print(f"Startup failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

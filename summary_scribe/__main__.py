"""
Package entry point: ``python -m summary_scribe``.
"""

import asyncio


def run_main():
    """Run the host process until it is stopped."""
    from .main import main

    asyncio.run(main())


if __name__ == "__main__":
    run_main()

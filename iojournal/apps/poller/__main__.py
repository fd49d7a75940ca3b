"""
Poller Module Entry Point

Allows execution via: python -m iojournal.apps.poller

Delegates to the journal consumer.
"""

import asyncio

from iojournal.apps.poller.consumer import main

if __name__ == "__main__":
    asyncio.run(main())

"""Entry point for `python -m volm`.

Usage:
    python -m volm
"""

from __future__ import annotations

import asyncio

from volm.app import main

asyncio.run(main())

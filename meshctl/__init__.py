"""
meshctl - run event-driven applications on a local container engine.

A broker, its sources, targets, transformations and triggers are
declared in a per-broker manifest and supervised as containers.

Usage:
    import asyncio
    from meshctl import LocalRuntime, configure_logging
    from meshctl.config import get_settings
    from meshctl.schema import CatalogFetcher

    async def main():
        settings = get_settings()
        catalog = await CatalogFetcher(settings).fetch()
        runtime = LocalRuntime(settings, catalog, broker="demo")
        await runtime.start_all()

    configure_logging()
    asyncio.run(main())
"""

import logging

from meshctl.errors import MeshError
from meshctl.runtime import LocalRuntime

__version__ = "0.1.0"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the default log format. Call from entry points only."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


__all__ = ["LocalRuntime", "MeshError", "configure_logging", "__version__"]

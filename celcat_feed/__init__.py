"""celcat_feed - calendar feeds aggregated from CELCAT group timetables.

Imports are kept light so the package can be inspected without pulling in
the server stack.
"""

__version__ = "1.0.0"

from typing import Any, Optional


def run_server(args: Optional[Any] = None) -> None:
    """Load settings from the environment, apply CLI overrides and start the server.

    Args:
        args: Optional argparse namespace with ``port`` and ``debug``
    """
    from celcat_feed.api.server import start_server
    from celcat_feed.core.config_manager import ConfigManager

    settings = ConfigManager().load_full_config()

    port = getattr(args, "port", None)
    if port is not None:
        settings = settings.model_copy(update={"server_port": port})
    if getattr(args, "debug", False):
        settings = settings.model_copy(update={"debug_logging": True})

    start_server(settings)

"""FastMCP server bootstrap for the handoff queue."""

import json
import logging
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import HandoffSettings, get_settings
from .service import HandoffQueue
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the handoff server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[HandoffSettings] = None,
    queue: HandoffQueue | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the handoff tools and a status resource."""

    settings = settings or get_settings()
    queue = queue or HandoffQueue.from_settings(settings)

    server = FastMCP(
        name="Handoff Queue",
        version=__version__,
        instructions=(
            "A shared task queue for handing work from one party to another. "
            "Create tasks, claim the next one by priority, report progress and "
            "record completion outputs or blockers."
        ),
    )

    handles = register_tools(server, queue=queue, settings=settings)

    def build_status() -> dict:
        payload = queue.status_snapshot()
        payload.update(
            {
                "server_version": __version__,
                "log_level": settings.log_level,
                "default_user": settings.default_user,
                "teammates": list(settings.teammates),
            }
        )
        return payload

    @server.resource(
        "resource://handoff/status",
        name="handoff_status",
        title="Handoff Queue Status",
        description="Store location, task totals, journal availability and per-project counts.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = build_status()
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    setattr(server, "handoff_queue", queue)
    setattr(server, "tool_handles", handles)
    setattr(server, "build_status", build_status)
    return server


def main() -> None:
    """Entry point for running the handoff MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    queue = getattr(server, "handoff_queue")
    logging.getLogger(__name__).info(
        "Launching handoff MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "db_path": str(settings.db_path),
            "journal_available": queue.journal_metadata.get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()

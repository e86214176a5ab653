"""PyGTD - application bootstrap and entry point."""

from __future__ import annotations

import asyncio
import logging
import logging.handlers
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from gtd.app.state import Store
from gtd.shared.core.configuration import LoggingConfig, SystemConfig, get_config
from gtd.shared.core.event_bus import EventBus
from gtd.shared.core.service_registry import (
    register_cleanup_handler,
    set_persistence_service,
    unregister_cleanup_handler,
)
from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "gtd.log"


def configure_logging(config: LoggingConfig) -> Path:
    """Configure the root logger.

    File handler: everything at the configured level, rotated.
    Console handler: only WARNING and ERROR.

    Returns:
        Path of the log file
    """
    logs_dir = Path(config.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file_path = logs_dir / LOG_FILE_NAME

    file_log_level = logging.getLevelName(config.level.upper())
    if not isinstance(file_log_level, int):
        file_log_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(file_log_level)
    # Avoid duplicate handlers when called more than once
    root_logger.handlers.clear()

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(file_log_level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    ))
    root_logger.addHandler(console_handler)

    logging.getLogger("duckdb").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.info(f"Logging configured: file={log_file_path}, console=WARNING+")
    return log_file_path


async def init_services(store: Store, config: SystemConfig) -> DuckDBPersistenceService:
    """Open durable storage, load persisted state and mark the store ready.

    Loading happens exactly once, before ``store.gtd.is_ready`` turns true.
    Autosave is wired only after the loaded data is in place.
    """
    persistence = DuckDBPersistenceService(
        store.bus,
        config.database.db_path,
        save_debounce=config.persistence.save_debounce,
        persist_contexts=config.persistence.persist_contexts,
    )
    await persistence.start()
    set_persistence_service(persistence)
    register_cleanup_handler(persistence.close)
    if persistence.connected:
        logger.info("DuckDBPersistenceService started")
    else:
        logger.warning("Durable storage unavailable: starting with an empty workspace")

    store.gtd.set_loading(True)
    try:
        loaded = await persistence.load()
        await store.gtd.hydrate(
            inbox_items=loaded.get("inboxItems", []),
            projects=loaded.get("projects", []),
            next_actions=loaded.get("nextActions", []),
            contexts=loaded.get("contexts"),
        )
    finally:
        store.gtd.set_loading(False)

    if config.persistence.autosave and persistence.connected:
        await persistence.enable_autosave()
        logger.info("Autosave enabled")
    else:
        logger.warning("Autosave disabled: changes are kept in memory only")

    await store.gtd.initialize()
    logger.info("Store ready")
    return persistence


async def shutdown(store: Store, persistence: DuckDBPersistenceService) -> None:
    """Drain pending events, write outstanding changes and close storage."""
    if not await store.bus.wait_until_idle():
        logger.warning("Shutting down with event handlers still running")
    await persistence.flush()
    persistence.close()
    unregister_cleanup_handler(persistence.close)
    set_persistence_service(None)
    logger.info("Shutdown complete")


@asynccontextmanager
async def open_workspace(config: Optional[SystemConfig] = None) -> AsyncIterator[Store]:
    """Yield a ready Store backed by durable storage; flush and close on exit."""
    config = config or get_config()
    store = Store.initialize(EventBus(), contexts=config.contexts.seed)
    try:
        persistence = await init_services(store, config)
        try:
            yield store
        finally:
            await shutdown(store, persistence)
    finally:
        Store.reset()


def render_status(store: Store, console: Optional[Console] = None) -> None:
    """Print a summary of the workspace."""
    console = console or Console()
    gtd = store.gtd

    console.print(f"[bold]Inbox:[/] {len(gtd.inbox_items)} item(s) to process")

    projects = Table(title="Projects", show_header=True)
    projects.add_column("Project", style="bold")
    projects.add_column("Active", justify="right")
    projects.add_column("Done", justify="right")
    projects.add_column("Progress", justify="right")
    for project in gtd.projects:
        active, done = gtd.project_action_counts(project.id)
        mode = "manual" if project.use_manual_progress else "auto"
        projects.add_row(
            project.name,
            str(active),
            str(done),
            f"{round(gtd.project_progress(project.id))}% ({mode})",
        )
    console.print(projects)

    contexts = Table(title="Next actions by context", show_header=True)
    contexts.add_column("Context")
    contexts.add_column("Active", justify="right")
    for context in gtd.contexts:
        count = len(gtd.filter_next_actions(context_id=context.id))
        contexts.add_row(f"[{context.color}]{context.name}[/]", str(count))
    untagged = sum(
        1 for a in gtd.filter_next_actions() if gtd.get_context(a.context_id) is None
    )
    contexts.add_row("(no context)", str(untagged))
    console.print(contexts)


async def _run(config: SystemConfig) -> None:
    async with open_workspace(config) as store:
        render_status(store)


def main() -> None:
    """Console entry point: show the status of the configured workspace."""
    load_dotenv()
    config = get_config()
    configure_logging(config.logging)
    logger.info("Starting PyGTD")
    asyncio.run(_run(config))


if __name__ == "__main__":
    main()

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import typer
import uvicorn

from drive.shared.config import settings

app = typer.Typer(help="Drive server and maintenance commands.")

@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Start the API server."""
    typer.echo(f"Starting Drive at http://{host}:{port} (env={settings.ENV})")
    uvicorn.run("drive.main:app", host=host, port=port, reload=reload)

@app.command("init-db")
def init_db_cmd():
    """Create the tables if they do not exist."""
    from drive.shared.db import init_db
    init_db()
    typer.echo("Database initialized")

@app.command("purge-deleted")
def purge_deleted(
    days: Optional[int] = typer.Option(None, help="Only files deleted at least this many days ago."),
):
    """Remove blobs and rows of soft-deleted files."""
    from drive.shared.db import SessionLocal, init_db
    from drive.files.service import purge_deleted_files
    from drive.files.storage import get_blob_store

    logging.basicConfig(level=settings.LOG_LEVEL)
    init_db()
    cutoff = datetime.now(timezone.utc) - timedelta(days=days) if days is not None else None
    with SessionLocal() as db:
        n = purge_deleted_files(db, get_blob_store(), older_than=cutoff)
    typer.echo(f"Purged {n} file(s)")

@app.command("purge-sessions")
def purge_sessions():
    """Delete expired login sessions from the session store."""
    from drive.shared.db import init_db
    from drive.auth.sessions import build_session_manager

    logging.basicConfig(level=settings.LOG_LEVEL)
    if settings.SESSION_STORE.lower() == "memory":
        typer.echo("Sessions are kept in server memory; nothing to purge")
        return
    init_db()
    n = build_session_manager().purge_expired()
    typer.echo(f"Purged {n} expired session(s)")

if __name__ == "__main__":
    app()

from datetime import timedelta
from pathlib import Path

from typer.testing import CliRunner

from conftest import make_user
from drive.auth.schemas import Identity
from drive.auth.sessions import DatabaseSessionManager
from drive.cli import app
from drive.files.service import soft_delete_file

runner = CliRunner()
ALICE = Identity(id="u1", username="alice@example.com", name="Alice")

def test_init_db():
    r = runner.invoke(app, ["init-db"])
    assert r.exit_code == 0
    assert "Database initialized" in r.output

def test_purge_deleted(db, put_file):
    owner = make_user(db)
    f = put_file(owner.id, "old.txt")
    path = Path(f.file_path)
    soft_delete_file(db, f.id, owner.id)

    r = runner.invoke(app, ["purge-deleted", "--days", "30"])
    assert r.exit_code == 0
    assert "Purged 0 file(s)" in r.output
    assert path.exists()

    r = runner.invoke(app, ["purge-deleted"])
    assert r.exit_code == 0
    assert "Purged 1 file(s)" in r.output
    assert not path.exists()

def test_purge_sessions():
    mgr = DatabaseSessionManager(60)
    live = mgr.create(ALICE)
    mgr.ttl = timedelta(seconds=-1)
    mgr.create(ALICE)
    mgr.create(ALICE)

    r = runner.invoke(app, ["purge-sessions"])
    assert r.exit_code == 0
    assert "Purged 2 expired session(s)" in r.output
    assert mgr.resolve(live) == ALICE

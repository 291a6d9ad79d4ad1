from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import make_user
from drive.files import service
from drive.files.models import File
from drive.shared.errors import BadRequest, Forbidden, NotFound

@pytest.fixture
def alice(db):
    return make_user(db, name="Alice", email="alice@example.com")

@pytest.fixture
def bob(db):
    return make_user(db, name="Bob", email="bob@example.com")

def test_create_then_get_round_trip(db, alice, put_file):
    f = put_file(alice.id, "Report.pdf", b"%PDF-1.7", "application/pdf")
    got = service.get_by_id(db, f.id)
    assert (got.original_name, got.mime_type, got.file_size) == ("Report.pdf", "application/pdf", 8)
    assert got.is_deleted is False
    assert got.created_at == got.modified_at == got.uploaded_at

def test_list_is_owner_scoped_and_sorted(db, alice, bob, put_file):
    put_file(alice.id, "b.txt")
    put_file(alice.id, "a.txt")
    put_file(bob.id, "c.txt")
    names = [f.original_name for f in service.list_files(db, alice.id)]
    assert names == ["a.txt", "b.txt"]
    assert all(f.owner_id == alice.id for f in service.list_files(db, alice.id))
    assert [f.original_name for f in service.list_files(db, bob.id)] == ["c.txt"]

def test_list_hides_deleted_unless_asked(db, alice, put_file):
    keep = put_file(alice.id, "keep.txt")
    gone = put_file(alice.id, "gone.txt")
    service.soft_delete_file(db, gone.id, alice.id)
    assert [f.id for f in service.list_files(db, alice.id)] == [keep.id]
    assert {f.id for f in service.list_files(db, alice.id, include_deleted=True)} == {keep.id, gone.id}

def test_get_other_users_file_is_forbidden(db, alice, bob, put_file):
    f = put_file(alice.id, "private.txt")
    with pytest.raises(Forbidden):
        service.get_file(db, f.id, bob.id)

def test_get_missing_is_not_found(db, alice):
    with pytest.raises(NotFound):
        service.get_file(db, "0" * 32, alice.id)

def test_rename_updates_display_name_and_modified_at(db, alice, put_file):
    f = put_file(alice.id, "draft.txt")
    disk_name = f.filename
    renamed = service.rename_file(db, f.id, alice.id, "final.txt")
    assert renamed.original_name == "final.txt"
    assert renamed.filename == disk_name
    got = service.get_by_id(db, f.id)
    assert got.original_name == "final.txt"
    assert got.modified_at > got.created_at

def test_rename_allows_duplicate_display_names(db, alice, put_file):
    put_file(alice.id, "same.txt")
    other = put_file(alice.id, "other.txt")
    assert service.rename_file(db, other.id, alice.id, "same.txt").original_name == "same.txt"

def test_rename_checks_owner_and_existence(db, alice, bob, put_file):
    f = put_file(alice.id, "mine.txt")
    with pytest.raises(Forbidden):
        service.rename_file(db, f.id, bob.id, "stolen.txt")
    assert service.get_by_id(db, f.id).original_name == "mine.txt"
    with pytest.raises(NotFound):
        service.rename_file(db, "f" * 32, alice.id, "x.txt")
    service.soft_delete_file(db, f.id, alice.id)
    with pytest.raises(NotFound):
        service.rename_file(db, f.id, alice.id, "late.txt")

@pytest.mark.parametrize("bad", ["", "   "])
def test_rename_rejects_blank_names(db, alice, put_file, bad):
    f = put_file(alice.id, "keep.txt")
    with pytest.raises(BadRequest):
        service.rename_file(db, f.id, alice.id, bad)
    assert service.get_by_id(db, f.id).original_name == "keep.txt"

def test_soft_delete_twice_is_not_found(db, alice, put_file):
    f = put_file(alice.id, "x.txt")
    service.soft_delete_file(db, f.id, alice.id)
    with pytest.raises(NotFound):
        service.soft_delete_file(db, f.id, alice.id)
    with pytest.raises(NotFound):
        service.get_by_id(db, f.id)

def test_soft_delete_keeps_blob_on_disk(db, alice, put_file):
    f = put_file(alice.id, "x.txt")
    service.soft_delete_file(db, f.id, alice.id)
    assert Path(f.file_path).exists()

def test_soft_delete_by_other_user_is_forbidden(db, alice, bob, put_file):
    f = put_file(alice.id, "x.txt")
    with pytest.raises(Forbidden):
        service.soft_delete_file(db, f.id, bob.id)
    assert service.get_by_id(db, f.id).is_deleted is False

def test_search_is_case_insensitive_substring_and_owner_scoped(db, alice, bob, put_file):
    mine = put_file(alice.id, "Report.pdf")
    put_file(bob.id, "report-final.txt")
    put_file(alice.id, "holiday.jpg")
    found = service.search_files(db, "report", alice.id)
    assert [f.id for f in found] == [mine.id]

def test_search_skips_deleted(db, alice, put_file):
    f = put_file(alice.id, "budget.xlsx")
    service.soft_delete_file(db, f.id, alice.id)
    assert service.search_files(db, "budget", alice.id) == []

def test_search_treats_wildcards_literally(db, alice, put_file):
    put_file(alice.id, "100%_done.txt")
    put_file(alice.id, "1000 done.txt")
    assert [f.original_name for f in service.search_files(db, "0%_", alice.id)] == ["100%_done.txt"]

@pytest.mark.parametrize("q", [None, "", "  "])
def test_empty_search_is_rejected(db, alice, q):
    with pytest.raises(BadRequest):
        service.search_files(db, q, alice.id)

def test_storage_usage(db, alice, put_file):
    assert service.storage_usage(db, alice.id) == (0, 0)
    put_file(alice.id, "a.txt", b"12345")
    gone = put_file(alice.id, "b.txt", b"123")
    service.soft_delete_file(db, gone.id, alice.id)
    assert service.storage_usage(db, alice.id) == (1, 5)

def test_purge_removes_blob_and_row_of_deleted_files(db, alice, blobs, put_file):
    keep = put_file(alice.id, "keep.txt")
    gone = put_file(alice.id, "gone.txt")
    gone_id, gone_path = gone.id, Path(gone.file_path)
    service.soft_delete_file(db, gone_id, alice.id)

    assert service.purge_deleted_files(db, blobs) == 1
    assert not gone_path.exists()
    assert db.get(File, gone_id) is None
    assert Path(keep.file_path).exists()

def test_purge_respects_age_cutoff(db, alice, blobs, put_file):
    f = put_file(alice.id, "recent.txt")
    service.soft_delete_file(db, f.id, alice.id)
    cutoff = datetime.now(timezone.utc) - timedelta(days=7)
    assert service.purge_deleted_files(db, blobs, older_than=cutoff) == 0
    assert Path(f.file_path).exists()

def test_rename_stores_name_as_sent(db, alice, put_file):
    f = put_file(alice.id, "keep.txt")
    assert service.rename_file(db, f.id, alice.id, "  spaced name.txt ").original_name == "  spaced name.txt "

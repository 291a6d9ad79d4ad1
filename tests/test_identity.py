import pytest
from sqlalchemy import func, select

from drive.auth import service as auth_service
from drive.auth.models import FederatedCredential, User
from drive.auth.schemas import GOOGLE_ISSUER, ProviderProfile
from drive.auth.service import link_identity
from drive.shared.db import SessionLocal
from drive.shared.errors import BadRequest, NotFound

def _count(db, model):
    return db.scalar(select(func.count()).select_from(model))

def test_first_login_creates_user_and_credential(db):
    ident = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-1", display_name="Ada", emails=["ada@example.com"]))
    assert ident.name == "Ada"
    assert ident.username == "ada@example.com"
    u = db.get(User, ident.id)
    assert u.email == "ada@example.com"
    cred = db.scalars(select(FederatedCredential)).one()
    assert (cred.provider, cred.subject, cred.user_id) == (GOOGLE_ISSUER, "g-1", ident.id)

def test_second_login_reuses_user_even_with_new_display_name(db):
    first = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-2", display_name="Bob", emails=["bob@example.com"]))
    again = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-2", display_name="Robert"))
    assert again.id == first.id
    assert _count(db, User) == 1
    assert _count(db, FederatedCredential) == 1

def test_defaults_when_provider_gives_nothing(db):
    ident = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-3"))
    assert ident.name == "Unknown User"
    assert ident.username.startswith("user_")
    assert db.get(User, ident.id).email is None

def test_given_name_used_when_display_name_missing(db):
    ident = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-4", given_name="Grace"))
    assert ident.name == "Grace"

def test_two_users_without_email_can_coexist(db):
    a = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-5"))
    b = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-6"))
    assert a.id != b.id
    assert a.username != b.username

def test_same_subject_other_issuer_is_another_user(db):
    a = link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="same"))
    b = link_identity(db, "https://issuer.example.com", ProviderProfile(subject="same"))
    assert a.id != b.id

def test_missing_subject_is_rejected(db):
    with pytest.raises(BadRequest):
        link_identity(db, GOOGLE_ISSUER, ProviderProfile(display_name="Nobody"))

def test_credential_pointing_at_missing_user_is_reported(db, monkeypatch):
    link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-7"))
    real_get = db.get
    monkeypatch.setattr(db, "get", lambda model, key, **kw: None if model is User else real_get(model, key, **kw))
    with pytest.raises(NotFound):
        link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject="g-7"))

def test_losing_first_login_race_resolves_to_winner(db, monkeypatch):
    profile = ProviderProfile(subject="g-race", display_name="Racer", emails=["racer@example.com"])
    with SessionLocal() as other:
        winner = link_identity(other, GOOGLE_ISSUER, profile)

    # the loser read "not found" before the winner committed
    real_lookup = auth_service._lookup
    calls = {"n": 0}
    def stale_then_real(*a, **kw):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_lookup(*a, **kw)
    monkeypatch.setattr(auth_service, "_lookup", stale_then_real)

    loser = link_identity(db, GOOGLE_ISSUER, profile)
    assert loser.id == winner.id
    assert _count(db, User) == 1
    assert _count(db, FederatedCredential) == 1

import logging, secrets, time
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from drive.auth.models import User, FederatedCredential
from drive.auth.schemas import Identity, ProviderProfile
from drive.shared.errors import BadRequest, NotFound, StoreError

logger = logging.getLogger(__name__)

def _placeholder_username() -> str:
    return f"user_{int(time.time() * 1000)}_{secrets.token_hex(3)}"

def to_identity(u: User) -> Identity:
    return Identity(id=u.id, username=u.username, name=u.name)

def _lookup(db: Session, issuer: str, subject: str) -> Identity | None:
    cred = db.scalars(
        select(FederatedCredential).where(
            FederatedCredential.provider == issuer, FederatedCredential.subject == subject
        )
    ).first()
    if not cred:
        return None
    u = db.get(User, cred.user_id)
    if not u:
        # credential without its user is a data-integrity problem, not a new login
        logger.error("federated credential %s points at missing user %s", cred.id, cred.user_id)
        raise NotFound("Linked user not found")
    return to_identity(u)

def _create_linked(db: Session, issuer: str, subject: str, profile: ProviderProfile) -> Identity:
    email = profile.primary_email
    u = User(
        name=profile.resolved_name,
        email=email,
        username=email or _placeholder_username(),
    )
    db.add(u)
    db.flush()  # assigns u.id inside the open transaction
    db.add(FederatedCredential(user_id=u.id, provider=issuer, subject=subject))
    db.commit()  # both rows or neither
    db.refresh(u)
    logger.info("created user %s for %s subject %s", u.id, issuer, subject)
    return to_identity(u)

def link_identity(db: Session, issuer: str, profile: ProviderProfile) -> Identity:
    """
    Map a verified (issuer, subject) to a local user, creating the user and its
    federated credential on first sight. The caller has already verified the
    profile with the provider.

    A concurrent first login for the same identity makes one of the two inserts
    fail on UNIQUE(provider, subject); the loser rolls back and re-reads, ending
    up with the winner's user.
    """
    subject = profile.subject
    if not subject:
        raise BadRequest("Provider profile has no subject id")
    try:
        found = _lookup(db, issuer, subject)
        if found:
            return found
        return _create_linked(db, issuer, subject, profile)
    except IntegrityError:
        db.rollback()
        found = _lookup(db, issuer, subject)
        if found:
            logger.info("lost first-login race for %s subject %s; using existing user", issuer, subject)
            return found
        raise StoreError("Could not link identity")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("identity store error")
        raise StoreError() from e

# auth_service/services/ledger.py
"""
Server-side record of issued refresh tokens.

Per-token states: active -> rotated (superseded by a successor),
active -> revoked (logout), and expired (derived from ``expires_at`` at
validation time, never written). Rows in a terminal state never validate
again.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from auth_service.core.config import Settings
from auth_service.core.errors import RefreshFailure, RefreshTokenError
from auth_service.core.logging import get_logger
from auth_service.core.metrics import REFRESH_FAILURES, REFRESH_REUSE
from auth_service.core.tokens import as_utc, hash_refresh_token, utcnow
from auth_service.crud.user import user_crud
from auth_service.models.refresh_token import RefreshToken
from auth_service.models.user import User

if TYPE_CHECKING:
    from auth_service.core.tokens import TokenIssuer, TokenPair

log = get_logger(__name__)


def new_family_id() -> str:
    return uuid.uuid4().hex


class RefreshTokenLedger:
    def __init__(self, settings: Settings):
        self.settings = settings

    # ------------------------------------------------------------------ lookup
    def _get_by_hash(self, db: Session, token_hash: str) -> Optional[RefreshToken]:
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        return db.execute(stmt).scalar_one_or_none()

    def lookup(self, db: Session, raw_token: str) -> Optional[RefreshToken]:
        return self._get_by_hash(db, hash_refresh_token(raw_token))

    # ------------------------------------------------------------------ writes
    def persist(
        self,
        db: Session,
        *,
        user_id: int,
        raw_token: str,
        expires_at: datetime,
        family_id: Optional[str] = None,
        commit: bool = True,
    ) -> RefreshToken:
        row = RefreshToken(
            user_id=user_id,
            token_hash=hash_refresh_token(raw_token),
            family_id=family_id or new_family_id(),
            expires_at=expires_at,
        )
        db.add(row)
        if commit:
            db.commit()
        else:
            db.flush()
        log.debug("refresh_token_stored", token_id=row.id, user_id=user_id, family_id=row.family_id)
        return row

    def _reject(self, db: Session, row: Optional[RefreshToken], reason: RefreshFailure) -> RefreshTokenError:
        REFRESH_FAILURES.labels(reason=reason.value).inc()
        if row is None:
            log.info("refresh_token_rejected", reason=reason.value)
            return RefreshTokenError(reason)

        reuse = reason is RefreshFailure.REVOKED and row.rotated
        if reuse:
            REFRESH_REUSE.inc()
            log.warning(
                "refresh_token_reuse_detected",
                token_id=row.id,
                user_id=row.user_id,
                family_id=row.family_id,
            )
            if self.settings.REFRESH_REUSE_REVOKES_FAMILY:
                self.revoke_family(db, row.family_id)
        else:
            log.info("refresh_token_rejected", reason=reason.value, token_id=row.id, user_id=row.user_id)
        return RefreshTokenError(reason, reuse=reuse)

    def _check(self, db: Session, row: Optional[RefreshToken], now: datetime) -> RefreshToken:
        if row is None:
            raise self._reject(db, None, RefreshFailure.NOT_FOUND)
        if row.revoked_at is not None:
            raise self._reject(db, row, RefreshFailure.REVOKED)
        if as_utc(row.expires_at) < now:
            raise self._reject(db, row, RefreshFailure.EXPIRED)
        return row

    def validate(self, db: Session, raw_token: str, *, now: Optional[datetime] = None) -> int:
        row = self._check(db, self.lookup(db, raw_token), now or utcnow())
        return row.user_id

    def consume(self, db: Session, token_id: int, successor_id: Optional[int], now: datetime) -> bool:
        """
        Compare-and-set the row to its terminal state. Only one caller can
        move a given row out of ``revoked_at IS NULL``; the others get False.
        """
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now, replaced_by_id=successor_id)
        )
        return db.execute(stmt).rowcount == 1

    def rotate(self, db: Session, raw_token: str, issuer: "TokenIssuer") -> Tuple["TokenPair", User]:
        now = utcnow()
        row = self._check(db, self.lookup(db, raw_token), now)

        user = user_crud.get(db, row.user_id)
        if user is None:
            raise self._reject(db, None, RefreshFailure.NOT_FOUND)

        pair = issuer.issue_pair(db, user.id, user.email, family_id=row.family_id, commit=False)
        successor = self._get_by_hash(db, hash_refresh_token(pair.refresh_token))
        if not self.consume(db, row.id, successor.id, now):
            # a concurrent rotation of the same token committed first
            db.rollback()
            raise self._reject(db, self.lookup(db, raw_token), RefreshFailure.REVOKED)
        db.commit()
        log.info("refresh_token_rotated", token_id=row.id, successor_id=successor.id, user_id=user.id)
        return pair, user

    def revoke(self, db: Session, raw_token: str) -> bool:
        """Idempotent: unknown or already revoked tokens are not an error."""
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token_hash == hash_refresh_token(raw_token), RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        changed = db.execute(stmt).rowcount
        db.commit()
        log.info("refresh_token_revoked", changed=changed)
        return changed > 0

    def revoke_all(self, db: Session, user_id: int) -> int:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        count = db.execute(stmt).rowcount
        db.commit()
        log.info("refresh_tokens_revoked_for_user", user_id=user_id, count=count)
        return count

    def revoke_family(self, db: Session, family_id: str) -> int:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.family_id == family_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        count = db.execute(stmt).rowcount
        db.commit()
        log.warning("refresh_token_family_revoked", family_id=family_id, count=count)
        return count

    def sweep_expired(self, db: Session, *, now: Optional[datetime] = None) -> int:
        cutoff = now or utcnow()
        expired_ids = select(RefreshToken.id).where(RefreshToken.expires_at < cutoff)
        db.execute(
            update(RefreshToken)
            .where(RefreshToken.replaced_by_id.in_(expired_ids))
            .values(replaced_by_id=None)
            .execution_options(synchronize_session=False)
        )
        count = db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < cutoff).execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        log.info("expired_refresh_tokens_swept", count=count)
        return count

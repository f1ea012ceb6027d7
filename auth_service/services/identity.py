# auth_service/services/identity.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth_service.core.errors import ConflictError, MissingEmail
from auth_service.core.logging import get_logger
from auth_service.core.tokens import utcnow
from auth_service.crud.user import normalize_email, provider_crud, user_crud
from auth_service.models.account_provider import Provider
from auth_service.models.user import User
from auth_service.services.providers import Profile

log = get_logger(__name__)


class IdentityResolver:
    """
    Finds or creates the local user for a verified provider profile.

    Lookup order: existing provider link, then a user with the same email
    (account linking), then a brand new user. Everything happens in one
    transaction; the unique constraint on ``(provider, provider_user_id)``
    catches concurrent first logins, and the loser re-reads the winner's rows.
    """

    def resolve(self, db: Session, provider: Provider, profile: Profile) -> User:
        email = normalize_email(profile.email)

        link = provider_crud.get_by_identity(db, provider, profile.provider_user_id)
        if link is not None:
            user = link.user
            self._refresh_names(user, profile)
            link.updated_at = utcnow()
            db.commit()
            return user

        if not email:
            raise MissingEmail()

        try:
            user = user_crud.get_by_email(db, email)
            if user is not None:
                if profile.email_verified is False:
                    log.warning("account_link_refused_unverified_email", provider=provider.value, user_id=user.id)
                    raise ConflictError("Email is not verified by the provider; cannot link to an existing account.")
                self._refresh_names(user, profile)
                log.info("account_linked", provider=provider.value, user_id=user.id)
            else:
                user = user_crud.add(
                    db, {"email": email, "first_name": profile.first_name, "last_name": profile.last_name}
                )
                log.info("user_created", provider=provider.value, user_id=user.id)
            provider_crud.add(
                db, {"user_id": user.id, "provider": provider, "provider_user_id": profile.provider_user_id}
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            winner = self._reread(db, provider, profile, email)
            if winner is None:
                raise ConflictError()
            log.info("identity_race_recovered", provider=provider.value, user_id=winner.id)
            return winner

        db.refresh(user)
        return user

    def _reread(self, db: Session, provider: Provider, profile: Profile, email: str) -> Optional[User]:
        provider_user_id = profile.provider_user_id
        link = provider_crud.get_by_identity(db, provider, provider_user_id)
        if link is not None:
            return link.user
        user = user_crud.get_by_email(db, email)
        if user is None or profile.email_verified is False:
            return None
        # the other request created the user with a different provider link; link ours now
        try:
            provider_crud.add(db, {"user_id": user.id, "provider": provider, "provider_user_id": provider_user_id})
            db.commit()
        except IntegrityError:
            db.rollback()
            link = provider_crud.get_by_identity(db, provider, provider_user_id)
            return link.user if link is not None else None
        return user

    @staticmethod
    def _refresh_names(user: User, profile: Profile) -> None:
        if not user.first_name and profile.first_name:
            user.first_name = profile.first_name
        if not user.last_name and profile.last_name:
            user.last_name = profile.last_name

# auth_service/crud/user.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from auth_service.crud.base import CRUDBase
from auth_service.models.account_provider import AccountProvider, Provider
from auth_service.models.user import User


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class CRUDUser(CRUDBase[User]):
    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


class CRUDAccountProvider(CRUDBase[AccountProvider]):
    def get_by_identity(self, db: Session, provider: Provider, provider_user_id: str) -> Optional[AccountProvider]:
        stmt = select(AccountProvider).where(
            AccountProvider.provider == provider,
            AccountProvider.provider_user_id == provider_user_id,
        )
        return db.execute(stmt).scalar_one_or_none()


user_crud = CRUDUser(User)
provider_crud = CRUDAccountProvider(AccountProvider)

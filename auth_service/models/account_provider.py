# auth_service/models/account_provider.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from auth_service.db.base import Base


class Provider(str, enum.Enum):
    google = "google"
    apple = "apple"
    facebook = "facebook"


class AccountProvider(Base):
    __tablename__ = "account_providers"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_account_providers_provider_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    provider: Mapped[Provider] = mapped_column(
        Enum(Provider, name="auth_provider", native_enum=False, length=16), nullable=False
    )
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user = relationship("User", back_populates="providers")

# auth_service/schemas/user.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel


class UserOut(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    providers: List[str] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "alias_generator": to_camel, "populate_by_name": True}

    @field_validator("providers", mode="before")
    @classmethod
    def _provider_names(cls, value):
        # accepts the ORM relationship (AccountProvider rows) or plain strings
        names = []
        for item in value or []:
            provider = getattr(item, "provider", item)
            names.append(getattr(provider, "value", provider))
        return sorted(set(names))

# auth_service/crud/base.py
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from auth_service.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.get(self.model, id)

    def add(self, db: Session, data: Dict[str, Any]) -> ModelType:
        """Stage a new row and flush it so it gets an id; the caller commits."""
        obj = self.model(**data)
        db.add(obj)
        db.flush()
        return obj

"""
Generic persistence layer.

Repository wraps a SQLAlchemy session and a mapped model and exposes the
CRUD operations every entity shares. Write methods accept either a pydantic
model of the entity's create/update shape or a plain dict of column values.
"""
import logging
from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError
from .models import User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")
CreateT = TypeVar("CreateT", bound=BaseModel)
UpdateT = TypeVar("UpdateT", bound=BaseModel)


def as_values(data: Union[BaseModel, Mapping[str, Any]], partial: bool = False) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=partial)
    return dict(data)


class Repository(Generic[ModelT, CreateT, UpdateT]):
    model: Type[ModelT]
    model_name: str = "Entity"

    def __init__(self, db: Session):
        self.db = db

    def create(self, data: Union[CreateT, Mapping[str, Any]]) -> ModelT:
        """
        Insert a new row.

        Raises:
            ConflictError: when a unique constraint is violated
        """
        entity = self.model(**as_values(data))
        self.db.add(entity)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"{self.model_name} violates a unique constraint") from exc
        self.db.refresh(entity)
        return entity

    def find_all(self) -> List[ModelT]:
        return self.db.query(self.model).all()

    def get(self, entity_id: Any) -> Optional[ModelT]:
        return self.db.get(self.model, entity_id)

    def find_one(self, entity_id: Any) -> ModelT:
        entity = self.get(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.model_name} not found")
        return entity

    def update(self, entity_id: Any, data: Union[UpdateT, Mapping[str, Any]]) -> ModelT:
        entity = self.find_one(entity_id)
        return self._apply(entity, as_values(data, partial=True))

    def remove(self, entity_id: Any) -> ModelT:
        entity = self.find_one(entity_id)
        self.db.delete(entity)
        self.db.commit()
        return entity

    def _apply(self, entity: ModelT, values: Mapping[str, Any]) -> ModelT:
        for field, value in values.items():
            setattr(entity, field, value)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"{self.model_name} violates a unique constraint") from exc
        self.db.refresh(entity)
        return entity


class UserRepository(Repository[User, BaseModel, BaseModel]):
    """Credential store: users keyed by email."""

    model = User
    model_name = "User"

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.get(user_id)

    def update_by_email(self, email: str, **values: Any) -> User:
        user = self.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        return self._apply(user, values)

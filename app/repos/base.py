from typing import Generic, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Base

Model = TypeVar("Model", bound=Base)
CreateSchema = TypeVar("CreateSchema", bound=BaseModel)
UpdateSchema = TypeVar("UpdateSchema", bound=BaseModel)


class BaseRepository(Generic[Model, CreateSchema, UpdateSchema]):
    def __init__(self, session: AsyncSession, model: Type[Model]):
        """
        Initialize the repository with a session and model.

        Args:
            session (AsyncSession): The database session.
            model (Type[Model]): The model class.
        """
        self.session = session
        self.model = model

    async def create_one(self, schema: CreateSchema, auto_commit: bool = True) -> Model:
        """
        Insert a row built from ``schema`` and return it.

        Args:
            schema (CreateSchema): The data to create the object.
            auto_commit (bool): Whether to commit the transaction.
        """
        stmt = insert(self.model).values(**schema.model_dump(exclude_none=True)).returning(self.model)
        result = await self.session.execute(stmt)
        if auto_commit:
            await self.session.commit()

        return result.scalar_one()

    async def get_by_id(self, obj_id: int) -> Model | None:
        result = await self.session.execute(select(self.model).where(self.model.id == obj_id))
        return result.scalar_one_or_none()

    async def update_by_id(
        self, obj_id: int, schema: UpdateSchema, auto_commit: bool = True
    ) -> Model | None:
        """
        Apply the non-None fields of ``schema`` to a row.

        Returns:
            Model | None: The updated object or None if not found.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == obj_id)
            .values(**schema.model_dump(exclude_none=True))
            .returning(self.model)
        )
        result = await self.session.execute(stmt)
        if auto_commit:
            await self.session.commit()

        return result.scalar_one_or_none()

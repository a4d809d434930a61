from typing import Generic, TypeVar, Type, Optional, List, Any, Dict
from sqlalchemy.orm import Session
from sqlalchemy import select
from pydantic import BaseModel
from crm.database import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Generic CRUD class with tenant isolation via explicit tenant_id.

    Every query filters by tenant_id, which is always passed explicitly from
    the service layer. Write methods commit by default; pass ``commit=False``
    to flush only and let the caller commit several writes together.

    Type Parameters:
        ModelType: SQLAlchemy model class
        CreateSchemaType: Pydantic schema for creating records
        UpdateSchemaType: Pydantic schema for updating records
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: int, tenant_id: int, *, for_update: bool = False) -> Optional[ModelType]:
        """
        Retrieve a single record by ID with tenant filtering.

        Args:
            db: Database session
            id: Record ID
            tenant_id: Tenant ID for isolation
            for_update: Lock the row until the transaction ends

        Returns:
            Model instance or None if not found or doesn't belong to tenant
        """
        stmt = select(self.model).where(
            self.model.id == id,
            self.model.tenant_id == tenant_id
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_multi(
        self,
        db: Session,
        *,
        skip: int = 0,
        limit: int = 100,
        tenant_id: int
    ) -> List[ModelType]:
        """
        Retrieve multiple records with pagination and tenant filtering, newest first.
        """
        stmt = select(self.model).where(
            self.model.tenant_id == tenant_id
        ).order_by(self.model.id.desc()).offset(skip).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def create(
        self,
        db: Session,
        *,
        obj_in: CreateSchemaType | Dict[str, Any],
        tenant_id: int,
        commit: bool = True
    ) -> ModelType:
        """
        Create a new record with tenant association.

        Args:
            db: Database session
            obj_in: Pydantic schema or dict with creation data
            tenant_id: Tenant ID for isolation
            commit: Whether to commit immediately

        Returns:
            Created model instance
        """
        obj_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump()
        db_obj = self.model(tenant_id=tenant_id, **obj_data)
        db.add(db_obj)
        self._save(db, db_obj, commit)
        return db_obj

    def update(
        self,
        db: Session,
        *,
        db_obj: ModelType,
        obj_in: UpdateSchemaType | Dict[str, Any],
        commit: bool = True
    ) -> ModelType:
        """
        Update an existing record.

        Note: This method assumes the db_obj was already retrieved using
        get() or similar method, which ensures tenant isolation.
        """
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(db_obj, field, value)

        db.add(db_obj)
        self._save(db, db_obj, commit)
        return db_obj

    def delete(self, db: Session, *, id: int, tenant_id: int) -> Optional[ModelType]:
        """
        Delete a record by ID with tenant filtering.

        Returns:
            Deleted model instance or None if not found
        """
        obj = self.get(db=db, id=id, tenant_id=tenant_id)
        if obj:
            db.delete(obj)
            db.commit()
        return obj

    @staticmethod
    def _save(db: Session, db_obj: ModelType, commit: bool) -> None:
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()  # Get ID without committing

# lms_analytics/models/base.py
from sqlalchemy.orm import as_declarative, declared_attr
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import DateTime, Boolean, Enum, Uuid, func
import uuid


@as_declarative()
class Base:
    __abstract__ = True  # Prevents creating a table for the base class
    
    id: Mapped[uuid.UUID]
    
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
    
    id = mapped_column(Uuid(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    created_at = mapped_column(DateTime, server_default=func.now(), index=True)
    updated_at = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
    
    # Soft delete only; the analytics engine never removes rows
    is_deleted = mapped_column(Boolean, default=False, nullable=False, index=True)


def enum_column_type(enum_cls):
    """Store enums as their string values in a VARCHAR column"""
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda enum_cls: [e.value for e in enum_cls]
    )

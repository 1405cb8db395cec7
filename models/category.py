from sqlalchemy import Column, Index, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import Base, BaseModel, SoftDeleteMixin
from models.transaction import TransactionType


class Category(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "categories"

    name = Column(String(64), nullable=False)
    type = Column(SAEnum(TransactionType, name="transaction_type", native_enum=False), nullable=False)
    description = Column(String(255), nullable=True)

    transactions = relationship("Transaction", back_populates="category")

    # one live category per name and type
    __table_args__ = (
        Index(
            "uq_categories_name_type_live",
            "name",
            "type",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )

    def __repr__(self):
        return f"<Category {self.name} ({self.type.value})>"

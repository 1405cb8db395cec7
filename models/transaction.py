from datetime import date
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import Base, BaseModel, SoftDeleteMixin


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"  # savings
    INVESTMENT = "INVESTMENT"


class Transaction(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "transactions"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    type = Column(SAEnum(TransactionType, name="transaction_type", native_enum=False), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=False)
    notes = Column(String(1000), nullable=True)
    transaction_date = Column("date", Date, nullable=False, default=date.today)

    category = relationship("Category", back_populates="transactions", lazy="selectin")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_date", "user_id", "date"),
    )

    def __repr__(self):
        return f"<Transaction {self.type.value} {self.amount} user={self.user_id}>"

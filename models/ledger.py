"""
Data access for categories and the user's transactions.

Transactions are always scoped to their owner: a transaction of another user
looks exactly like one that does not exist.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import func, or_

from models.category import Category
from models.db_storage import DBStorage
from models.transaction import Transaction, TransactionType

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


@dataclass
class TransactionFilter:
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    keyword: Optional[str] = None
    include_deleted: bool = False


class LedgerRepository:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    @property
    def session(self):
        return self.storage.get_session()

    def save(self, *objs) -> None:
        with self.storage.transaction() as session:
            for obj in objs:
                session.add(obj)

    # categories

    def get_category(self, category_id: str, include_deleted: bool = False) -> Optional[Category]:
        category = self.storage.get(Category, category_id)
        if category is None or (category.is_deleted and not include_deleted):
            return None
        return category

    def list_categories(
        self,
        page: int,
        limit: int,
        tx_type: TransactionType | None = None,
        search: str | None = None,
        include_deleted: bool = False,
    ) -> Tuple[list, int]:
        q = self.session.query(Category)
        if not include_deleted:
            q = q.filter(Category.is_deleted.is_(False))
        if tx_type is not None:
            q = q.filter(Category.type == tx_type)
        if search:
            pattern = f"%{search.strip().lower()}%"
            q = q.filter(or_(func.lower(Category.name).like(pattern), func.lower(Category.description).like(pattern)))
        total = q.count()
        rows = q.order_by(Category.name.asc(), Category.type.asc()).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def category_conflict(self, name: str, tx_type: TransactionType, exclude_id: str | None = None) -> bool:
        """True when another live category has the same name (any case) and type."""
        q = self.session.query(Category).filter(
            func.lower(Category.name) == name.lower(),
            Category.type == tx_type,
            Category.is_deleted.is_(False),
        )
        if exclude_id:
            q = q.filter(Category.id != exclude_id)
        return self.session.query(q.exists()).scalar()

    def category_in_use(self, category: Category) -> bool:
        q = self.session.query(Transaction).filter(Transaction.category_id == category.id)
        return self.session.query(q.exists()).scalar()

    def hard_delete_category(self, category: Category) -> None:
        with self.storage.transaction() as session:
            session.delete(category)

    # transactions

    def get_transaction(self, user_id: str, tx_id: str, include_deleted: bool = False) -> Optional[Transaction]:
        tx = self.storage.get(Transaction, tx_id)
        if tx is None or tx.user_id != user_id:
            return None
        if tx.is_deleted and not include_deleted:
            return None
        return tx

    @staticmethod
    def _criteria(user_id: str, filters: TransactionFilter) -> list:
        criteria = [Transaction.user_id == user_id]
        if not filters.include_deleted:
            criteria.append(Transaction.is_deleted.is_(False))
        if filters.type is not None:
            criteria.append(Transaction.type == filters.type)
        if filters.category_id:
            criteria.append(Transaction.category_id == filters.category_id)
        if filters.start:
            criteria.append(Transaction.transaction_date >= filters.start)
        if filters.end:
            criteria.append(Transaction.transaction_date <= filters.end)
        if filters.min_amount is not None:
            criteria.append(Transaction.amount >= filters.min_amount)
        if filters.max_amount is not None:
            criteria.append(Transaction.amount <= filters.max_amount)
        if filters.keyword:
            pattern = f"%{filters.keyword.strip().lower()}%"
            criteria.append(
                or_(func.lower(Transaction.description).like(pattern), func.lower(Transaction.notes).like(pattern))
            )
        return criteria

    def list_transactions(
        self, user_id: str, filters: TransactionFilter, page: int, limit: int, order_by: list
    ) -> Tuple[list, int]:
        q = self.session.query(Transaction).filter(*self._criteria(user_id, filters))
        total = q.count()
        rows = (
            q.order_by(*order_by, Transaction.created_at.desc(), Transaction.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def summarize(self, user_id: str, start: date | None, end: date | None) -> dict:
        """Totals per type and per category over live transactions in [start, end]."""
        criteria = self._criteria(user_id, TransactionFilter(start=start, end=end))

        totals = {t: {"total": to_money(0), "count": 0} for t in TransactionType}
        rows = (
            self.session.query(Transaction.type, func.sum(Transaction.amount), func.count(Transaction.id))
            .filter(*criteria)
            .group_by(Transaction.type)
            .all()
        )
        for tx_type, total, count in rows:
            totals[tx_type] = {"total": to_money(total), "count": count}

        by_category = []
        rows = (
            self.session.query(
                Transaction.category_id,
                Category.name,
                Transaction.type,
                func.sum(Transaction.amount),
                func.count(Transaction.id),
            )
            .outerjoin(Category, Transaction.category_id == Category.id)
            .filter(*criteria)
            .group_by(Transaction.category_id, Category.name, Transaction.type)
            .order_by(func.sum(Transaction.amount).desc())
            .all()
        )
        for category_id, name, tx_type, total, count in rows:
            by_category.append(
                {"category_id": category_id, "name": name, "type": tx_type, "total": to_money(total), "count": count}
            )

        income = totals[TransactionType.INCOME]["total"]
        expense = totals[TransactionType.EXPENSE]["total"]
        return {
            "totals": totals,
            "income": income,
            "expense": expense,
            "net": income - expense,
            "count": sum(t["count"] for t in totals.values()),
            "by_category": by_category,
        }

"""
Personal transactions. Every route works on the caller's own transactions;
another user's transaction answers 404 like a missing one.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from flask import Blueprint, jsonify, request

from api.extensions import services
from api.query_params import (
    flag,
    parse_date_param,
    parse_decimal_param,
    parse_enum_param,
    parse_pagination,
    parse_sort,
)
from models.ledger import TransactionFilter
from models.schemas.transaction import TransactionCreateSchema, TransactionOutSchema, TransactionUpdateSchema
from models.transaction import Transaction, TransactionType
from utils.decorators import current_identity, jwt_required, rate_limit
from utils.exceptions import BadRequestError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

bp = Blueprint("transactions", __name__)

tx_create_schema = TransactionCreateSchema()
tx_update_schema = TransactionUpdateSchema()
tx_out_schema = TransactionOutSchema()
tx_list_out_schema = TransactionOutSchema(many=True)

SORT_COLUMNS = {
    "date": Transaction.transaction_date,
    "amount": Transaction.amount,
    "created_at": Transaction.created_at,
}

PERIODS = ("week", "month", "year", "all")


def _get_transaction_or_404(tx_id: str, include_deleted: bool = False) -> Transaction:
    tx = services().ledger.get_transaction(current_identity().user_id, tx_id, include_deleted=include_deleted)
    if tx is None:
        raise NotFoundError("Transaction not found")
    return tx


def _resolve_category(category_id: Optional[str]) -> Optional[str]:
    if not category_id:
        return None
    if services().ledger.get_category(category_id) is None:
        raise NotFoundError("Category not found")
    return category_id


def resolve_period(period: str, start: Optional[date], end: Optional[date], today: date) -> Tuple[Optional[date], Optional[date]]:
    """Explicit dates win; otherwise the period ending today."""
    if start or end:
        return start, end
    if period == "week":
        return today - timedelta(days=6), today
    if period == "month":
        return today.replace(day=1), today
    if period == "year":
        return today.replace(month=1, day=1), today
    return None, None


def _money(value) -> str:
    return str(value)


@bp.get("/transactions/types")
@jwt_required()
@rate_limit("user")
def transaction_types():
    """
    Transaction types
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    return jsonify({"data": [t.value for t in TransactionType]})


@bp.post("/transactions")
@jwt_required()
@rate_limit("user")
def create_transaction():
    """
    Record a transaction
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    consumes: [application/json]
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [type, amount, description]
          properties:
            type: { type: string, enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT] }
            amount: { type: number, example: 12.5, description: "positive, two decimals" }
            description: { type: string, maxLength: 255 }
            date: { type: string, format: date, description: "defaults to today" }
            categoryId: { type: string }
            notes: { type: string, maxLength: 1000 }
    responses:
      201: { description: Created }
      400: { description: Validation error }
      404: { description: Category not found }
    """
    data = tx_create_schema.load(request.get_json(silent=True) or {})
    user_id = current_identity().user_id
    tx = Transaction(
        user_id=user_id,
        type=data["type"],
        amount=data["amount"],
        description=data["description"],
        notes=data.get("notes"),
        category_id=_resolve_category(data.get("category_id")),
        transaction_date=data.get("transaction_date") or date.today(),
    )
    services().ledger.save(tx)
    logger.info("Transaction %s created for user %s", tx.id, user_id)
    return jsonify({"data": tx_out_schema.dump(tx)}), 201


@bp.get("/transactions")
@jwt_required()
@rate_limit("user")
def list_transactions():
    """
    List the caller's transactions with filters, sorting and pagination
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        default: "-date"
        description: "Comma separated: date, amount, created_at; '-' prefix for descending"
      - in: query
        name: type
        type: string
        enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT, ALL]
      - in: query
        name: categoryId
        type: string
      - in: query
        name: startDate
        type: string
        format: date
      - in: query
        name: endDate
        type: string
        format: date
      - in: query
        name: minAmount
        type: number
      - in: query
        name: maxAmount
        type: number
      - in: query
        name: q
        type: string
        description: keyword in description or notes
      - in: query
        name: include_deleted
        type: boolean
        default: false
    responses:
      200: { description: OK }
      400: { description: Invalid query parameter }
    """
    page, limit = parse_pagination()
    order_by = parse_sort(SORT_COLUMNS, default="-date")
    filters = TransactionFilter(
        type=parse_enum_param("type", TransactionType),
        category_id=request.args.get("categoryId") or None,
        start=parse_date_param("startDate"),
        end=parse_date_param("endDate"),
        min_amount=parse_decimal_param("minAmount"),
        max_amount=parse_decimal_param("maxAmount"),
        keyword=request.args.get("q") or None,
        include_deleted=flag("include_deleted"),
    )
    if filters.start and filters.end and filters.start > filters.end:
        raise ValidationError("startDate must not be after endDate")
    rows, total = services().ledger.list_transactions(current_identity().user_id, filters, page, limit, order_by)
    return jsonify(
        {
            "data": tx_list_out_schema.dump(rows),
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "sort": request.args.get("sort", "-date"),
                "filters": {k: v for k, v in request.args.items() if k not in ("page", "limit", "sort")},
            },
        }
    )


@bp.get("/transactions/summary")
@jwt_required()
@rate_limit("user")
def transaction_summary():
    """
    Totals per type and per category over a period
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: query
        name: period
        type: string
        enum: [week, month, year, all]
        default: month
      - in: query
        name: startDate
        type: string
        format: date
      - in: query
        name: endDate
        type: string
        format: date
    responses:
      200: { description: OK }
      400: { description: Invalid period or dates }
    """
    period = request.args.get("period", "month").lower()
    if period not in PERIODS:
        raise ValidationError(f"period must be one of {list(PERIODS)}")
    start, end = resolve_period(period, parse_date_param("startDate"), parse_date_param("endDate"), date.today())
    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")

    summary = services().ledger.summarize(current_identity().user_id, start, end)
    return jsonify(
        {
            "data": {
                "period": period,
                "startDate": start.isoformat() if start else None,
                "endDate": end.isoformat() if end else None,
                "income": _money(summary["income"]),
                "expense": _money(summary["expense"]),
                "net": _money(summary["net"]),
                "count": summary["count"],
                "totals": {
                    tx_type.value: {"total": _money(item["total"]), "count": item["count"]}
                    for tx_type, item in summary["totals"].items()
                },
                "byCategory": [
                    {
                        "categoryId": row["category_id"],
                        "name": row["name"],
                        "type": row["type"].value,
                        "total": _money(row["total"]),
                        "count": row["count"],
                    }
                    for row in summary["by_category"]
                ],
            }
        }
    )


@bp.get("/transactions/<tx_id>")
@jwt_required()
@rate_limit("user")
def get_transaction(tx_id: str):
    """
    Get one of the caller's transactions
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": tx_out_schema.dump(_get_transaction_or_404(tx_id))})


@bp.patch("/transactions/<tx_id>")
@jwt_required()
@rate_limit("user")
def update_transaction(tx_id: str):
    """
    Update a transaction (partial)
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            type: { type: string, enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT] }
            amount: { type: number }
            description: { type: string }
            date: { type: string, format: date }
            categoryId: { type: string }
            notes: { type: string }
    responses:
      200: { description: Updated }
      400: { description: Validation error }
      404: { description: Transaction or category not found }
    """
    tx = _get_transaction_or_404(tx_id)
    data = tx_update_schema.load(request.get_json(silent=True) or {})
    if "category_id" in data:
        tx.category_id = _resolve_category(data.pop("category_id"))
    for field, value in data.items():
        setattr(tx, field, value)
    services().ledger.save(tx)
    return jsonify({"data": tx_out_schema.dump(tx)})


@bp.delete("/transactions/<tx_id>")
@jwt_required()
@rate_limit("user")
def delete_transaction(tx_id: str):
    """
    Soft delete a transaction
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      204: { description: Deleted }
      404: { description: Not found }
    """
    tx = _get_transaction_or_404(tx_id)
    tx.soft_delete()
    services().ledger.save(tx)
    logger.info("Transaction %s deleted by user %s", tx.id, tx.user_id)
    return "", 204


@bp.post("/transactions/<tx_id>/restore")
@jwt_required()
@rate_limit("user")
def restore_transaction(tx_id: str):
    """
    Restore a soft-deleted transaction
    ---
    tags: [Transactions]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      200: { description: Restored }
      400: { description: Transaction is not deleted }
      404: { description: Not found }
    """
    tx = _get_transaction_or_404(tx_id, include_deleted=True)
    if not tx.is_deleted:
        raise BadRequestError("Transaction is not deleted")
    tx.restore()
    services().ledger.save(tx)
    return jsonify({"data": tx_out_schema.dump(tx)})

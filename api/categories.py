from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from api.extensions import services
from api.query_params import flag, parse_enum_param, parse_pagination
from models.category import Category
from models.repository import ADMIN_ROLE
from models.schemas.category import CategoryCreateSchema, CategoryOutSchema, CategoryUpdateSchema
from models.transaction import TransactionType
from utils.decorators import current_identity, jwt_required, permissions_required, rate_limit, roles_required
from utils.exceptions import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

bp = Blueprint("categories", __name__)

create_schema = CategoryCreateSchema()
update_schema = CategoryUpdateSchema()
out_schema = CategoryOutSchema()
out_list_schema = CategoryOutSchema(many=True)


def _get_category_or_404(category_id: str, include_deleted: bool = False) -> Category:
    category = services().ledger.get_category(category_id, include_deleted=include_deleted)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _conflict(name: str, tx_type: TransactionType) -> ConflictError:
    return ConflictError(f"Category with name '{name}' and type '{tx_type.value}' already exists")


@bp.get("/categories")
@jwt_required()
@rate_limit("user")
def list_categories():
    """
    List categories (pagination, type filter, q search; include_deleted for admins)
    ---
    tags: [Categories]
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
        name: type
        type: string
        enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT]
      - in: query
        name: q
        type: string
      - in: query
        name: include_deleted
        type: boolean
        default: false
    responses:
      200: { description: OK }
    """
    page, limit = parse_pagination()
    include_deleted = flag("include_deleted") and ADMIN_ROLE in current_identity().roles
    rows, total = services().ledger.list_categories(
        page,
        limit,
        tx_type=parse_enum_param("type", TransactionType),
        search=request.args.get("q"),
        include_deleted=include_deleted,
    )
    return jsonify({"data": out_list_schema.dump(rows), "meta": {"page": page, "limit": limit, "total": total}})


@bp.get("/categories/<category_id>")
@jwt_required()
@rate_limit("user")
def get_category(category_id: str):
    """
    Get a category by id
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found or deleted }
    """
    return jsonify({"data": out_schema.dump(_get_category_or_404(category_id))})


@bp.post("/categories")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:categories"])
def create_category():
    """
    Create a category - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    consumes: [application/json]
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [name, type]
          properties:
            name: { type: string, maxLength: 64 }
            type: { type: string, enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT] }
            description: { type: string, maxLength: 255 }
    responses:
      201: { description: Created }
      400: { description: Validation error }
      409: { description: Name already exists for this type }
    """
    data = create_schema.load(request.get_json(silent=True) or {})
    ledger = services().ledger
    if ledger.category_conflict(data["name"], data["type"]):
        raise _conflict(data["name"], data["type"])
    category = Category(name=data["name"], type=data["type"], description=data.get("description"))
    ledger.save(category)
    logger.info("Category %s created by %s", category.id, current_identity().user_id)
    return jsonify({"data": out_schema.dump(category)}), 201


@bp.patch("/categories/<category_id>")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:categories"])
def update_category(category_id: str):
    """
    Update a category (partial) - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 64 }
            type: { type: string, enum: [INCOME, EXPENSE, TRANSFER, INVESTMENT] }
            description: { type: string, maxLength: 255 }
    responses:
      200: { description: OK }
      404: { description: Not found or deleted }
      409: { description: Name already exists for this type }
    """
    category = _get_category_or_404(category_id)
    data = update_schema.load(request.get_json(silent=True) or {})
    ledger = services().ledger
    name = data.get("name", category.name)
    tx_type = data.get("type", category.type)
    changed = (name, tx_type) != (category.name, category.type)
    if changed and ledger.category_conflict(name, tx_type, exclude_id=category.id):
        raise _conflict(name, tx_type)
    category.name = name
    category.type = tx_type
    if "description" in data:
        category.description = data["description"]
    ledger.save(category)
    return jsonify({"data": out_schema.dump(category)})


@bp.delete("/categories/<category_id>")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:categories"])
def delete_category(category_id: str):
    """
    Delete a category - admin. Soft by default; ?hard=true removes a category no transaction uses.
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: string
        required: true
      - in: query
        name: hard
        type: boolean
    responses:
      204: { description: Deleted }
      400: { description: Already deleted, or still used by transactions (hard delete) }
      404: { description: Not found }
    """
    ledger = services().ledger
    hard = flag("hard")
    category = _get_category_or_404(category_id, include_deleted=True)
    if hard:
        if ledger.category_in_use(category):
            raise BadRequestError("Cannot delete category that is used in transactions. Use soft delete instead.")
        ledger.hard_delete_category(category)
    else:
        if category.is_deleted:
            raise BadRequestError("Category is already deleted")
        category.soft_delete()
        ledger.save(category)
    services().users.record_audit(
        current_identity().user_id, "CATEGORY_DELETED", details={"target": category_id, "hard": hard}
    )
    return "", 204


@bp.post("/categories/<category_id>/restore")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:categories"])
def restore_category(category_id: str):
    """
    Restore a soft-deleted category - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: string
        required: true
    responses:
      200: { description: Restored }
      400: { description: Category is not deleted }
      404: { description: Not found }
      409: { description: Another live category has the same name and type }
    """
    ledger = services().ledger
    category = _get_category_or_404(category_id, include_deleted=True)
    if not category.is_deleted:
        raise BadRequestError("Category is not deleted")
    if ledger.category_conflict(category.name, category.type, exclude_id=category.id):
        raise _conflict(category.name, category.type)
    category.restore()
    ledger.save(category)
    return jsonify({"data": out_schema.dump(category)})

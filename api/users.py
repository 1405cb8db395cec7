"""Admin user management. Every route needs the ADMIN role plus a permission."""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from api.extensions import services
from api.query_params import flag, parse_pagination
from models.repository import ADMIN_ROLE
from models.schemas.user import AdminUserOutSchema, UserRolesSchema, UserStatusSchema
from utils.decorators import current_identity, jwt_required, permissions_required, rate_limit, roles_required
from utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

user_out_schema = AdminUserOutSchema()
user_list_out_schema = AdminUserOutSchema(many=True)
status_schema = UserStatusSchema()
roles_schema = UserRolesSchema()


def _get_user_or_404(user_id: str, include_deleted: bool = False):
    repo = services().users
    user = repo.get_any(user_id) if include_deleted else repo.get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@bp.get("/users")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["read:users"])
def list_users():
    """
    List users (newest first)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
      - in: query
        name: include_deleted
        type: boolean
    responses:
      200: { description: OK }
      403: { description: Forbidden }
    """
    page, limit = parse_pagination()
    rows, total = services().users.list_users(page, limit, include_deleted=flag("include_deleted"))
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total},
        }
    )


@bp.get("/users/<string:user_id>")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["read:users"])
def get_user(user_id: str):
    """
    Get a user by id
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    user = _get_user_or_404(user_id, include_deleted=True)
    return jsonify({"data": user_out_schema.dump(user)})


@bp.delete("/users/<string:user_id>")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["delete:users"])
def delete_user(user_id: str):
    """
    Delete a user (soft by default, ?hard=true removes the row)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: query
        name: hard
        type: boolean
    responses:
      204: { description: Deleted }
      404: { description: Not found }
    """
    svc = services()
    hard = flag("hard")
    user = _get_user_or_404(user_id, include_deleted=hard)
    if hard:
        svc.users.hard_delete(user)
    else:
        user.soft_delete()
        svc.users.save(user)
    svc.sessions.delete_refresh(user_id)
    svc.users.record_audit(current_identity().user_id, "USER_DELETED", details={"target": user_id, "hard": hard})
    logger.info("User %s deleted by %s (hard=%s)", user_id, current_identity().user_id, hard)
    return "", 204


@bp.patch("/users/<string:user_id>/status")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["update:users"])
def set_user_status(user_id: str):
    """
    Activate or deactivate a user
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: body
        name: body
        schema:
          type: object
          required: [isActive]
          properties:
            isActive: { type: boolean }
    responses:
      200: { description: Updated }
      404: { description: Not found }
    """
    data = status_schema.load(request.get_json(silent=True) or {})
    svc = services()
    user = _get_user_or_404(user_id)
    user.is_active = data["is_active"]
    svc.users.save(user)
    if not user.is_active:
        svc.sessions.delete_refresh(user.id)
    svc.users.record_audit(
        current_identity().user_id, "USER_STATUS_CHANGED", details={"target": user.id, "isActive": user.is_active}
    )
    return jsonify({"data": user_out_schema.dump(user)})


@bp.put("/users/<string:user_id>/roles")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:roles"])
def set_user_roles(user_id: str):
    """
    Replace a user's roles
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: body
        name: body
        schema:
          type: object
          required: [roles]
          properties:
            roles:
              type: array
              items: { type: string }
    responses:
      200: { description: Updated }
      404: { description: User or role not found }
    """
    data = roles_schema.load(request.get_json(silent=True) or {})
    svc = services()
    user = _get_user_or_404(user_id)
    names = [name.strip().upper() for name in data["roles"]]
    user, missing = svc.users.set_user_roles(user, names)
    if missing:
        raise NotFoundError(f"Unknown roles: {', '.join(sorted(missing))}")
    svc.users.record_audit(
        current_identity().user_id, "USER_ROLES_CHANGED", details={"target": user.id, "roles": sorted(names)}
    )
    return jsonify({"data": user_out_schema.dump(user)})

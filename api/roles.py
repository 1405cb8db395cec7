from __future__ import annotations

from flask import Blueprint, jsonify, request

from api.extensions import services
from models.repository import ADMIN_ROLE
from models.schemas.role import RoleCreateSchema, RoleOutSchema, RolePermissionsSchema
from utils.decorators import jwt_required, permissions_required, rate_limit, roles_required
from utils.exceptions import ConflictError, NotFoundError

bp = Blueprint("roles", __name__)

role_create_schema = RoleCreateSchema()
role_permissions_schema = RolePermissionsSchema()
role_out_schema = RoleOutSchema()
role_list_out_schema = RoleOutSchema(many=True)


@bp.get("/roles")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:roles"])
def list_roles():
    """
    List roles with their permissions
    ---
    tags:
      - Roles
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    return jsonify({"data": role_list_out_schema.dump(services().users.list_roles())})


@bp.post("/roles")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:roles"])
def create_role():
    """
    Create a role
    ---
    tags:
      - Roles
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [name]
          properties:
            name: { type: string }
            description: { type: string }
    responses:
      201: { description: Created }
      409: { description: Role exists }
    """
    data = role_create_schema.load(request.get_json(silent=True) or {})
    repo = services().users
    if repo.get_role(data["name"]) is not None:
        raise ConflictError("Role already exists")
    role = repo.create_role(data["name"], data.get("description"))
    return jsonify({"data": role_out_schema.dump(role)}), 201


@bp.put("/roles/<string:name>/permissions")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["manage:roles"])
def set_role_permissions(name: str):
    """
    Replace the permissions granted by a role
    ---
    tags:
      - Roles
    security:
      - Bearer: []
    parameters:
      - in: path
        name: name
        type: string
        required: true
      - in: body
        name: body
        schema:
          type: object
          required: [permissions]
          properties:
            permissions:
              type: array
              items: { type: string }
    responses:
      200: { description: Updated }
      404: { description: Role not found }
    """
    data = role_permissions_schema.load(request.get_json(silent=True) or {})
    repo = services().users
    role = repo.get_role(name.upper())
    if role is None:
        raise NotFoundError("Role not found")
    role = repo.set_role_permissions(role, data["permissions"])
    return jsonify({"data": role_out_schema.dump(role)})

"""
Account activity history, read from the audit log:
- GET /activities               the caller's own entries
- GET /users/<id>/activities    any user's entries (admin)
"""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from api.extensions import services
from api.query_params import parse_date_param, parse_pagination
from models.repository import ADMIN_ROLE
from models.schemas.audit_log import ActivityOutSchema
from utils.decorators import current_identity, jwt_required, permissions_required, rate_limit, roles_required
from utils.exceptions import NotFoundError

bp = Blueprint("activities", __name__)

activity_list_out_schema = ActivityOutSchema(many=True)


def _activities_response(user_id: str):
    page, limit = parse_pagination()
    rows, total = services().users.list_activities(
        user_id,
        page,
        limit,
        action=request.args.get("action"),
        start=parse_date_param("startDate"),
        end=parse_date_param("endDate"),
    )
    return jsonify(
        {
            "data": activity_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total},
        }
    )


@bp.get("/activities")
@jwt_required()
@rate_limit("user")
def my_activities():
    """
    Activity history of the current user (newest first)
    ---
    tags:
      - Activities
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
        name: action
        type: string
        description: "e.g. LOGIN, LOGOUT, PASSWORD_CHANGED"
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
      400: { description: Invalid query parameter }
    """
    return _activities_response(current_identity().user_id)


@bp.get("/users/<string:user_id>/activities")
@jwt_required()
@rate_limit("user")
@roles_required([ADMIN_ROLE])
@permissions_required(["read:users"])
def user_activities(user_id: str):
    """
    Activity history of any user
    ---
    tags:
      - Activities
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    if services().users.get_any(user_id) is None:
        raise NotFoundError("User not found")
    return _activities_response(user_id)

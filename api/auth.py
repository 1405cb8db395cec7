"""
Authentication blueprint:
- POST  /auth/register
- POST  /auth/login
- POST  /auth/refresh-token
- POST  /auth/logout
- POST  /auth/request-password-reset
- POST  /auth/reset-password
- POST  /auth/verify-email
- POST  /auth/request-email-verification
- GET   /auth/user-profile
- PATCH /auth/user-profile
- POST  /auth/change-password
- PATCH /auth/account-settings

Short-lived access tokens travel in the response body; the refresh token
only ever travels in an HttpOnly cookie and is rotated on every refresh.
"""
from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from api.auth_service import LoginStage, TokenPair
from api.extensions import services
from models.schemas.user import (
    AccountSettingsSchema,
    ChangePasswordSchema,
    EmailVerificationSchema,
    LoginSchema,
    PasswordResetRequestSchema,
    PasswordResetSchema,
    ProfileUpdateSchema,
    RegisterSchema,
    UserOutSchema,
)
from utils.decorators import current_identity, jwt_required, rate_limit
from utils.rate_limit import client_ip

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent"

register_schema = RegisterSchema()
login_schema = LoginSchema()
reset_request_schema = PasswordResetRequestSchema()
reset_schema = PasswordResetSchema()
verification_schema = EmailVerificationSchema()
change_password_schema = ChangePasswordSchema()
profile_update_schema = ProfileUpdateSchema()
account_settings_schema = AccountSettingsSchema()
user_out_schema = UserOutSchema()


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _set_refresh_cookie(response, token: str):
    config = current_app.config
    response.set_cookie(
        config["REFRESH_COOKIE_NAME"],
        token,
        max_age=services().tokens.refresh_ttl,
        httponly=True,
        secure=config.get("REFRESH_COOKIE_SECURE", False),
        samesite="Strict",
        path="/",
    )
    return response


def _clear_refresh_cookie(response):
    config = current_app.config
    response.delete_cookie(
        config["REFRESH_COOKIE_NAME"],
        path="/",
        httponly=True,
        secure=config.get("REFRESH_COOKIE_SECURE", False),
        samesite="Strict",
    )
    return response


def _token_body(pair: TokenPair) -> dict:
    return {
        "accessToken": pair.access_token,
        "tokenType": "Bearer",
        "expiresIn": services().tokens.access_ttl,
    }


@bp.post("/register")
@rate_limit("auth", "public")
def register():
    """
    Register a new user.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [username, email, password]
          properties:
            username: { type: string }
            email: { type: string }
            password: { type: string }
            firstName: { type: string }
            lastName: { type: string }
    responses:
      201:
        description: Created
      400:
        description: Validation error
      409:
        description: Email or username already in use
      429:
        description: Too many requests
    """
    data = register_schema.load(_json_body())
    user = services().auth.register(data, ip_address=client_ip())
    return jsonify(
        {
            "message": "User registered successfully",
            "data": user_out_schema.dump(user),
        }
    ), 201


@bp.post("/login")
@rate_limit("auth", "sensitive")
def login():
    """
    Login with email or username; returns an access token and sets the refresh cookie.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string, description: email or username }
             password: { type: string }
    responses:
      200:
        description: Tokens issued, or a two-factor challenge
      401:
        description: Invalid credentials
      429:
        description: Too many requests
    """
    logger.debug("Login %s", LoginStage.RATE_LIMIT_CHECKED.value)
    payload = login_schema.load(_json_body())
    result = services().auth.login(payload["email"], payload["password"], ip_address=client_ip())

    if result.requires_two_factor:
        return jsonify({"requiresTwoFactor": True, "userId": result.user.id}), 200

    pair = result.tokens
    body = _token_body(pair)
    body["user"] = user_out_schema.dump(result.user)
    response = _set_refresh_cookie(jsonify(body), pair.refresh_token)
    logger.debug("Login %s for user %s", LoginStage.RESPONDED.value, result.user.id)
    return response, 200


@bp.post("/refresh-token")
@rate_limit("auth")
def refresh_token():
    """
    Rotate the refresh cookie and issue a new access token.
    ---
    tags:
      - Auth
    responses:
      200:
        description: New access token; refresh cookie rotated
      401:
        description: Missing, invalid, expired or replayed refresh token
    """
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    pair = services().auth.refresh(token)
    return _set_refresh_cookie(jsonify(_token_body(pair)), pair.refresh_token), 200


@bp.post("/logout")
@jwt_required()
@rate_limit("user")
def logout():
    """
    Logout: revoke the current refresh token and clear the cookie.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    services().auth.logout(current_identity().user_id, ip_address=client_ip())
    return _clear_refresh_cookie(jsonify({"message": "Logged out successfully"})), 200


@bp.post("/request-password-reset")
@rate_limit("auth", "sensitive")
def request_password_reset():
    """
    Request a password reset link. The response does not reveal whether the account exists.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email]
          properties:
            email: { type: string }
    responses:
      200:
        description: Generic acknowledgement
    """
    data = reset_request_schema.load(_json_body())
    services().auth.request_password_reset(data["email"])
    return jsonify({"message": RESET_REQUESTED_MESSAGE}), 200


@bp.post("/reset-password")
@rate_limit("auth", "sensitive")
def reset_password():
    """
    Set a new password with a reset token.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [userId, token, newPassword]
          properties:
            userId: { type: string }
            token: { type: string }
            newPassword: { type: string }
    responses:
      200:
        description: Password reset
      400:
        description: Invalid or expired token
    """
    data = reset_schema.load(_json_body())
    services().auth.reset_password(data["user_id"], data["token"], data["new_password"], ip_address=client_ip())
    return jsonify({"message": "Password has been reset successfully"}), 200


@bp.post("/verify-email")
@rate_limit("auth")
def verify_email():
    """
    Confirm an email address with a verification token.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [userId, token]
          properties:
            userId: { type: string }
            token: { type: string }
    responses:
      200:
        description: Email verified
      400:
        description: Invalid or expired token
    """
    data = verification_schema.load(_json_body())
    services().auth.verify_email(data["user_id"], data["token"])
    return jsonify({"message": "Email verified successfully"}), 200


@bp.post("/request-email-verification")
@jwt_required()
@rate_limit("user")
def request_email_verification():
    """
    Send a fresh email verification link to the caller.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Verification email sent
      409:
        description: Email already verified
    """
    services().auth.request_email_verification(current_identity().user_id)
    return jsonify({"message": "Verification email sent"}), 200


@bp.get("/user-profile")
@jwt_required()
@rate_limit("user")
def get_profile():
    """
    Get current user profile.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: User not found
    """
    user = services().auth.get_profile(current_identity().user_id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.patch("/user-profile")
@jwt_required()
@rate_limit("user")
def update_profile():
    """
    Update username, email or names of the current user.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            username: { type: string }
            email: { type: string }
            firstName: { type: string }
            lastName: { type: string }
    responses:
      200:
        description: Updated
      400:
        description: Validation error
      409:
        description: Email or username already in use
    """
    data = profile_update_schema.load(_json_body())
    user = services().auth.update_profile(current_identity().user_id, data)
    return jsonify({"message": "Profile updated successfully", "data": user_out_schema.dump(user)}), 200


@bp.post("/change-password")
@jwt_required()
@rate_limit("user")
def change_password():
    """
    Change the current user's password. Signs out other sessions.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [currentPassword, newPassword]
          properties:
            currentPassword: { type: string }
            newPassword: { type: string }
    responses:
      200:
        description: Password changed
      400:
        description: Validation error
      401:
        description: Current password is incorrect
    """
    data = change_password_schema.load(_json_body())
    services().auth.change_password(
        current_identity().user_id, data["current_password"], data["new_password"], ip_address=client_ip()
    )
    return _clear_refresh_cookie(jsonify({"message": "Password changed successfully"})), 200


@bp.patch("/account-settings")
@jwt_required()
@rate_limit("user")
def update_account_settings():
    """
    Update security settings of the current user.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            twoFactorEnabled: { type: boolean }
    responses:
      200:
        description: Updated
      400:
        description: Validation error
    """
    data = account_settings_schema.load(_json_body())
    user = services().auth.update_account_settings(current_identity().user_id, data, ip_address=client_ip())
    return jsonify({"message": "Account settings updated", "data": user_out_schema.dump(user)}), 200

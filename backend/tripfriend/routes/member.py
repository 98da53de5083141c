"""
routes/member.py — Member and session route handlers.

Layer rules:
  - Parse request body / query string
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service operation
  - Commit the DB session when the operation wrote to it
  - Set or clear the auth cookies
  - Return the standard response envelope: {"data": {...}, "warnings": []}

AppError propagates to the global error handler in tripfriend/__init__.py;
routes never catch it.

Every authenticated route except /restore refuses a soft-deleted member with
403 ACCOUNT_DEACTIVATED.

Endpoints (url_prefix=/api/v1/member):
  POST   /join                  → 201
  POST   /login                 → 200  sets accessToken + refreshToken cookies
  POST   /logout                → 200  clears accessToken cookie
  POST   /refresh               → 200  sets accessToken (+ refreshToken if rotated)
  GET    /me                    → 200
  GET    /mypage                → 200  (verified email)
  PUT    /update                → 200
  DELETE /delete                → 200  soft delete; clears accessToken cookie
  POST   /restore               → 200  (the only route open to a deactivated account)
  GET    /auth/verify-email     → 200
  POST   /auth/email            → 200
  GET    /all                   → 200  (ADMIN)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from tripfriend.errors import AppError, ErrorCode
from tripfriend.extensions import db, redis_client
from tripfriend.middleware.auth_middleware import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    extract_access_token,
    get_clock,
    get_session_manager,
    require_auth,
    require_role,
    require_session,
    require_verified,
)
from tripfriend.schemas.member_schema import (
    EmailAddressSchema,
    EmailVerificationSchema,
    JoinSchema,
    LoginSchema,
    MemberUpdateSchema,
)
from tripfriend.services import mail_service, member_service
from tripfriend.services.auth_service import AuthTokens

member_bp = Blueprint("member", __name__)


def _set_cookie(response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=current_app.config.get("AUTH_COOKIE_SECURE", True),
    )


def _set_auth_cookies(response, tokens: AuthTokens) -> None:
    _set_cookie(response, ACCESS_COOKIE, tokens.access_token, tokens.access_max_age)
    if tokens.refresh_max_age is not None:
        _set_cookie(response, REFRESH_COOKIE, tokens.refresh_token, tokens.refresh_max_age)


def _clear_access_cookie(response) -> None:
    _set_cookie(response, ACCESS_COOKIE, "", 0)


@member_bp.route("/join", methods=["POST"])
def join():
    """POST /member/join — Create an unverified account. (No auth required.)"""
    data = JoinSchema().load(request.get_json(force=True, silent=True) or {})
    result = member_service.join_member(
        username=data["username"],
        email=data["email"],
        password=data["password"],
        nickname=data["nickname"],
        session=db.session,
        bcrypt_rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@member_bp.route("/login", methods=["POST"])
def login():
    """POST /member/login — Authenticate; return tokens and set cookies."""
    data = LoginSchema().load(request.get_json(force=True, silent=True) or {})
    tokens = get_session_manager().login(data["username"], data["password"])

    response = jsonify({"data": tokens.to_dict(), "warnings": []})
    _set_auth_cookies(response, tokens)
    return response, 200


@member_bp.route("/logout", methods=["POST"])
def logout():
    """POST /member/logout — Blacklist the current access token. Always succeeds."""
    get_session_manager().logout(extract_access_token())

    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    _clear_access_cookie(response)
    return response, 200


@member_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /member/refresh — New access token from the (possibly expired) accessToken cookie."""
    access_token = request.cookies.get(ACCESS_COOKIE)
    if not access_token:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "No access token cookie is present.",
            401,
        )

    tokens = get_session_manager().refresh(access_token)

    response = jsonify({"data": tokens.to_dict(), "warnings": []})
    _set_auth_cookies(response, tokens)
    return response, 200


@member_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /member/me — Id and username of the current member."""
    return jsonify({
        "data": {"id": g.member.id, "username": g.member.username},
        "warnings": [],
    }), 200


@member_bp.route("/mypage", methods=["GET"])
@require_verified
def mypage():
    """GET /member/mypage — Full profile of the current member. (Verified email required.)"""
    result = member_service.get_member(g.member.id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@member_bp.route("/update", methods=["PUT"])
@require_auth
def update():
    """PUT /member/update — Change email, nickname and/or password."""
    data = MemberUpdateSchema().load(request.get_json(force=True, silent=True) or {})
    result = member_service.update_member(
        g.member,
        session=db.session,
        email=data.get("email"),
        nickname=data.get("nickname"),
        password=data.get("password"),
        bcrypt_rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@member_bp.route("/delete", methods=["DELETE"])
@require_auth
def delete():
    """DELETE /member/delete — Soft-delete the current member and end the session."""
    member_service.delete_member(
        g.member,
        access_token=g.access_token,
        manager=get_session_manager(),
        session=db.session,
        now=get_clock()(),
    )
    db.session.commit()

    response = jsonify({"data": {"message": "The account has been deleted."}, "warnings": []})
    _clear_access_cookie(response)
    return response, 200


@member_bp.route("/restore", methods=["POST"])
@require_session
def restore():
    """POST /member/restore — Undo a soft delete inside the restore window."""
    result = member_service.restore_member(g.member, session=db.session, now=get_clock()())
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@member_bp.route("/auth/verify-email", methods=["GET"])
def request_auth_code():
    """GET /member/auth/verify-email?email= — Mail a verification code."""
    data = EmailAddressSchema().load(request.args.to_dict())
    sent = mail_service.send_auth_code(
        data["email"],
        client=redis_client.client,
        sender=mail_service.MailSender.from_config(current_app.config),
        ttl=current_app.config["EMAIL_AUTH_CODE_EXPIRES"],
    )
    if not sent:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            "The verification code could not be sent.",
            500,
        )
    return jsonify({"data": {"message": "The verification code has been sent."}, "warnings": []}), 200


@member_bp.route("/auth/email", methods=["POST"])
def verify_auth_code():
    """POST /member/auth/email — Check a verification code and mark the member verified."""
    data = EmailVerificationSchema().load(request.get_json(force=True, silent=True) or {})
    verified = mail_service.verify_auth_code(
        data["email"],
        data["auth_code"],
        client=redis_client.client,
        session=db.session,
    )
    if not verified:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Email verification failed.",
            400,
            field="auth_code",
        )
    db.session.commit()
    return jsonify({"data": {"message": "Email verification succeeded."}, "warnings": []}), 200


@member_bp.route("/all", methods=["GET"])
@require_role("ADMIN")
def list_all():
    """GET /member/all — Every member. (ADMIN only.)"""
    result = member_service.list_members(session=db.session)
    return jsonify({"data": result, "warnings": []}), 200

"""
schemas/member_schema.py — Marshmallow schemas for member and auth endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/member_service.py: DUPLICATE_* checks (require a DB lookup).
  - services/auth_service.py: credential and token checks.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates, validates_schema


def _check_password_strength(value: str) -> None:
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")
    if not any(c.isalpha() for c in value):
        raise ValidationError("Password must contain at least one letter.")
    if not any(c.isdigit() for c in value):
        raise ValidationError("Password must contain at least one digit.")


class JoinSchema(Schema):
    """
    POST /member/join

    Field rules:
      username : 3–100 chars, alphanumeric + underscore only
      email    : valid email format
      password : min 8 chars, at least one letter and one digit
      nickname : 2–50 chars
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=100,
                error="Username must be between 3 and 100 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    nickname = fields.Str(
        required=True,
        validate=validate.Length(
            min=2,
            max=50,
            error="Nickname must be between 2 and 50 characters.",
        ),
    )

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        _check_password_strength(value)


class MemberUpdateSchema(Schema):
    """
    PUT /member/update

    All fields are optional; only provided fields are changed. Same rules as
    JoinSchema for whatever is sent. Username is not updatable.
    """

    email = fields.Email(validate=validate.Length(max=255))
    nickname = fields.Str(
        validate=validate.Length(
            min=2,
            max=50,
            error="Nickname must be between 2 and 50 characters.",
        ),
    )
    password = fields.Str(load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        _check_password_strength(value)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one of email, nickname or password.")


class LoginSchema(Schema):
    """
    POST /member/login

    Credential correctness is checked in auth_service.py.
    """

    username = fields.Str(required=True, validate=validate.Length(min=1))
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))


class EmailAddressSchema(Schema):
    """GET /member/auth/verify-email?email=..."""

    email = fields.Email(required=True)


class EmailVerificationSchema(Schema):
    """POST /member/auth/email"""

    email = fields.Email(required=True)
    auth_code = fields.Str(
        required=True,
        validate=validate.Length(
            equal=6,
            error="The verification code must be 6 characters.",
        ),
    )

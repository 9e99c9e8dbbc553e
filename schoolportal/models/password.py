# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password recovery and invite payloads."""

from pydantic import EmailStr, Field, model_validator

from schoolportal.models.common import CamelModel


class ForgotPasswordInput(CamelModel):
    email: EmailStr


class VerifyCodeInput(CamelModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")


class ResetPasswordInput(CamelModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")
    new_password: str = Field(min_length=8, max_length=128)


class SendLinkInput(CamelModel):
    """Admin-triggered reset link for an account, by uid or login email."""

    uid: str | None = None
    email: EmailStr | None = None
    continue_url: str | None = Field(default=None, max_length=2048)

    @model_validator(mode="after")
    def _require_target(self) -> "SendLinkInput":
        if not self.uid and not self.email:
            raise ValueError("uid or email is required")
        return self


class MarkPasswordSetInput(CamelModel):
    uid: str | None = None


class InitialPasswordInput(CamelModel):
    """Invite consumption: the new user sets a first password."""

    token: str = Field(min_length=16, max_length=128)
    email: EmailStr | None = None
    password: str = Field(max_length=128)

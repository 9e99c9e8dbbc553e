# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User administration payloads."""

from pydantic import EmailStr, Field

from schoolportal.models.common import CamelModel, Role


class CreateUserInput(CamelModel):
    """Account creation by an admin.

    Attributes:
        email: Login identifier.
        notify_email: Contact address receiving portal emails.
        role: Role, immutable afterwards.
        prenom: First name.
        nom: Last name.
        filiere: Study track (students).
        niveau: Study level (students).
        parent_of: Student uids (parents).
    """

    email: EmailStr
    notify_email: EmailStr | None = None
    role: Role
    prenom: str | None = Field(default=None, max_length=100)
    nom: str | None = Field(default=None, max_length=100)
    filiere: str | None = Field(default=None, max_length=100)
    niveau: str | None = Field(default=None, max_length=50)
    parent_of: list[str] | None = None


class UpdateUserInput(CamelModel):
    """Partial update; only fields explicitly sent are applied."""

    email: EmailStr | None = None
    notify_email: EmailStr | None = None
    prenom: str | None = Field(default=None, max_length=100)
    nom: str | None = Field(default=None, max_length=100)
    filiere: str | None = Field(default=None, max_length=100)
    niveau: str | None = Field(default=None, max_length=50)
    parent_of: list[str] | None = None


class StudentPickerQuery(CamelModel):
    """Student picker parameters."""

    q: str = ""
    only_unassigned: bool = True
    limit: int | None = Field(default=None, ge=1)
    cursor: str | None = None


class ListUsersQuery(CamelModel):
    """Full user listing parameters."""

    role: Role | None = None
    limit: int | None = Field(default=None, ge=1)
    cursor: str | None = Field(default=None, min_length=1)

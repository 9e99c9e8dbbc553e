# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Transactional email templates.

Each builder returns an ``EmailContent`` (subject, plain text, HTML). User
supplied values are HTML-escaped; links are produced by the services.
"""

from dataclasses import dataclass
from html import escape

_BUTTON_STYLE = (
    "display:inline-block;padding:10px 14px;border-radius:8px;"
    "background:#17766E;color:#fff;text-decoration:none;"
)
_WRAPPER_STYLE = "font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial,sans-serif;line-height:1.55"


@dataclass(frozen=True)
class EmailContent:
    """Rendered email."""

    subject: str
    text: str
    html: str


def _wrap(*paragraphs: str) -> str:
    body = "\n".join(f"  <p>{paragraph}</p>" for paragraph in paragraphs)
    return f'<div style="{_WRAPPER_STYLE}">\n{body}\n</div>'


def access_email(project_name: str, login_email: str, link: str) -> EmailContent:
    """Account created: login identifier plus the link to set a password.

    Args:
        project_name: Portal name.
        login_email: Login identifier of the new account.
        link: Invite (or reset) link.
    """
    text = (
        "Bonjour,\n\n"
        f"Votre accès au portail {project_name} a été créé.\n\n"
        f"Identifiant de connexion : {login_email}\n"
        f"Définir le mot de passe : {link}\n\n"
        "Si vous n'êtes pas à l'origine de cette demande, ignorez cet email.\n\n"
        f"Cordialement,\n{project_name}"
    )
    html = _wrap(
        "Bonjour,",
        f"Votre accès au portail <strong>{escape(project_name)}</strong> a été créé.",
        f"<strong>Identifiant de connexion :</strong> {escape(login_email)}",
        f'<a href="{escape(link, quote=True)}" target="_blank" style="{_BUTTON_STYLE}">'
        "Définir mon mot de passe</a>",
        "Si vous n'êtes pas à l'origine de cette demande, ignorez cet email.",
        f"Cordialement,<br/>{escape(project_name)}",
    )
    return EmailContent(subject=f"Accès au portail - {project_name}", text=text, html=html)


def reset_code_email(code: str, ttl_minutes: int) -> EmailContent:
    """Password reset code."""
    text = (
        "Bonjour,\n\n"
        f"Voici votre code de réinitialisation : {code}\n"
        f"Ce code est valable {ttl_minutes} minutes.\n\n"
        "Si vous n'êtes pas à l'origine de cette demande, ignorez cet e-mail."
    )
    html = _wrap(
        "Bonjour,",
        "Voici votre code de réinitialisation :",
        f'<span style="font-size:28px;font-weight:700;letter-spacing:2px;">{escape(code)}</span>',
        f"Ce code est valable <strong>{ttl_minutes} minutes</strong>.",
        "Si vous n'êtes pas à l'origine de cette demande, ignorez cet e-mail.",
    )
    return EmailContent(subject="Votre code de réinitialisation", text=text, html=html)


def login_email_changed_notice(
    project_name: str, display_name: str, old_login_email: str, new_login_email: str
) -> EmailContent:
    """Security notice: the login identifier changed."""
    text = (
        f"Bonjour {display_name},\n\n"
        f"Votre identifiant de connexion au portail {project_name} a été modifié.\n"
        f"Ancien identifiant : {old_login_email}\n"
        f"Nouvel identifiant : {new_login_email}\n\n"
        "Si vous n'êtes pas à l'origine de ce changement, contactez l'administration."
    )
    html = _wrap(
        f"Bonjour {escape(display_name)},",
        f"Votre identifiant de connexion au portail <strong>{escape(project_name)}</strong> a été modifié.",
        f"<strong>Ancien identifiant :</strong> {escape(old_login_email)}<br/>"
        f"<strong>Nouvel identifiant :</strong> {escape(new_login_email)}",
        "Si vous n'êtes pas à l'origine de ce changement, contactez l'administration.",
    )
    return EmailContent(subject=f"Identifiant modifié - {project_name}", text=text, html=html)


def notify_email_changed_notice(
    project_name: str, display_name: str, new_notify_email: str
) -> EmailContent:
    """Confirmation sent to a new contact address."""
    text = (
        f"Bonjour {display_name},\n\n"
        f"Cette adresse ({new_notify_email}) recevra désormais les emails du portail {project_name}.\n\n"
        "Si vous n'êtes pas à l'origine de ce changement, contactez l'administration."
    )
    html = _wrap(
        f"Bonjour {escape(display_name)},",
        f"Cette adresse (<strong>{escape(new_notify_email)}</strong>) recevra désormais "
        f"les emails du portail {escape(project_name)}.",
        "Si vous n'êtes pas à l'origine de ce changement, contactez l'administration.",
    )
    return EmailContent(subject=f"Adresse de contact modifiée - {project_name}", text=text, html=html)

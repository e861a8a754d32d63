"""Transactional email through Resend."""
from __future__ import annotations

import html

import httpx

from src.config.settings import EmailConfig
from src.utils.logging import get_logger

RESEND_URL = "https://api.resend.com/emails"

logger = get_logger(__name__)


class EmailError(RuntimeError):
    """Raised when the email provider rejects a message."""


_FOOTER = (
    '<hr style="border: none; border-top: 1px solid #2D2D35; margin: 24px 0;" />'
    '<p style="color: #6B7280; font-size: 12px;">'
    "Este email fue enviado por DobleLabs. Si no solicitaste este email, puedes ignorarlo."
    "</p>"
)
_BUTTON_STYLE = (
    "display: inline-block; margin-top: 16px; padding: 12px 24px; background: #E040FB; "
    "color: #fff; text-decoration: none; border-radius: 8px; font-weight: 600;"
)
_WRAPPER_STYLE = (
    "font-family: 'Inter', Arial, sans-serif; max-width: 560px; margin: 0 auto; "
    "color: #fff; background: #0D0D0F; padding: 32px; border-radius: 12px;"
)


def project_link(app_url: str, project_id: str) -> str:
    return f"{app_url.rstrip('/')}/app/upload?project={project_id}"


def render_completion_email(
    project_name: str,
    project_url: str,
    download_url: str | None,
) -> str:
    name = html.escape(project_name)
    button = ""
    if download_url:
        button = f'<a href="{html.escape(download_url, quote=True)}" style="{_BUTTON_STYLE}">Descargar Video</a>'
    return (
        f'<div style="{_WRAPPER_STYLE}">'
        '<h1 style="color: #E040FB; margin-bottom: 8px;">¡Tu video está listo!</h1>'
        '<p style="color: #9CA3AF; font-size: 16px; line-height: 1.6;">'
        f'Tu video para el proyecto <strong style="color: #fff;">"{name}"</strong> '
        "se ha generado exitosamente con DobleLabs.</p>"
        f"{button}"
        '<p style="margin-top: 16px;">'
        f'<a href="{html.escape(project_url, quote=True)}" style="color: #E040FB; text-decoration: underline;">'
        "Ver proyecto en DobleLabs</a></p>"
        f"{_FOOTER}</div>"
    )


def render_failure_email(project_name: str, project_url: str) -> str:
    name = html.escape(project_name)
    return (
        f'<div style="{_WRAPPER_STYLE}">'
        '<h1 style="color: #EF4444; margin-bottom: 8px;">Error en la generación</h1>'
        '<p style="color: #9CA3AF; font-size: 16px; line-height: 1.6;">'
        f'Hubo un problema al generar el video para <strong style="color: #fff;">"{name}"</strong>. '
        "Por favor intenta de nuevo.</p>"
        f'<a href="{html.escape(project_url, quote=True)}" style="{_BUTTON_STYLE}">Reintentar</a>'
        f"{_FOOTER}</div>"
    )


class EmailSender:
    """Sends HTML email; logs instead of sending when no API key is set."""

    def __init__(self, config: EmailConfig, *, http: httpx.Client | None = None) -> None:
        self._config = config
        self._http = http

    @classmethod
    def from_env(cls) -> EmailSender:
        return cls(EmailConfig.from_env())

    @property
    def app_url(self) -> str:
        return self._config.app_url

    def send(self, to: str, subject: str, body_html: str) -> bool:
        """Send one message. Returns False when sending is disabled."""
        if not self._config.api_key:
            logger.info("Would send email to %s: %s", to, subject)
            return False

        payload = {"from": self._config.from_email, "to": to, "subject": subject, "html": body_html}
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        try:
            if self._http is not None:
                response = self._http.post(RESEND_URL, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=15) as client:
                    response = client.post(RESEND_URL, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailError(f"Resend request failed: {exc}") from exc

        if response.is_error:
            raise EmailError(f"Resend API error {response.status_code}: {response.text}")
        return True

    def send_completion_email(
        self,
        to: str,
        project_name: str,
        project_id: str,
        download_url: str | None,
    ) -> bool:
        body = render_completion_email(
            project_name, project_link(self.app_url, project_id), download_url
        )
        return self.send(to, f'¡Tu video "{project_name}" está listo! - DobleLabs', body)

    def send_failure_email(self, to: str, project_name: str, project_id: str) -> bool:
        body = render_failure_email(project_name, project_link(self.app_url, project_id))
        return self.send(to, f'Error en tu video "{project_name}" - DobleLabs', body)

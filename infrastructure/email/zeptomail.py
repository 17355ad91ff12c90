"""ZeptoMail implementation of EmailProvider.

Templates live in templates/emails/ and are rendered with Jinja2. Every send
returns a bool; transport failures are logged here and never raised, so
callers treat email as best-effort.
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_url: str = "http://localhost:3000",
        temporary_password_ttl_hours: int = 24,
        reset_token_ttl_minutes: int = 10,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_url = app_url.rstrip("/")
        self._temporary_password_ttl_hours = temporary_password_ttl_hours
        self._reset_token_ttl_minutes = reset_token_ttl_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    @property
    def _brand(self) -> str:
        return self._settings.zepto_from_name

    async def _send(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("zepto_mail_send_failed", reason="not_configured")
            return False

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [
                {
                    "email_address": {
                        "address": to_email,
                        "name": to_name or to_email,
                    }
                }
            ],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body

        authorization = self._settings.zepto_api_token
        if not authorization.startswith("Zoho-enczapikey "):
            authorization = f"Zoho-enczapikey {authorization}"

        headers = {"Authorization": authorization, "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                _ZEPTO_API_URL, json=payload, headers=headers
            )
            if response.status_code in (200, 201, 202):
                log.info("email_sent_success", to_email=to_email, subject=subject)
                return True
            log.error(
                "email_sent_failed",
                to_email=to_email,
                subject=subject,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=to_email,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def send_temporary_password_email(
        self, email: str, user_name: Optional[str], temporary_password: str
    ) -> bool:
        subject = "Welcome! Your Temporary Password"
        template = self._jinja.get_template("temporary_password.html")
        html_body = template.render(
            user_name=user_name,
            temporary_password=temporary_password,
            ttl_hours=self._temporary_password_ttl_hours,
            app_url=self._app_url,
            brand=self._brand,
        )
        text_body = (
            f"Welcome to {self._brand}!\n\n"
            f"Hello{f' {user_name}' if user_name else ''},\n\n"
            f"Your temporary password is: {temporary_password}\n\n"
            f"It expires in {self._temporary_password_ttl_hours} hours. "
            f"Sign in at {self._app_url}/signIn and change it from your profile.\n\n"
            f"The {self._brand} Team"
        )
        return await self._send(email, user_name, subject, html_body, text_body)

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], reset_url: str
    ) -> bool:
        subject = "Password Reset Request"
        template = self._jinja.get_template("password_reset.html")
        html_body = template.render(
            user_name=user_name,
            reset_url=reset_url,
            ttl_minutes=self._reset_token_ttl_minutes,
            brand=self._brand,
        )
        text_body = (
            f"Password Reset Request\n\n"
            f"Hello{f' {user_name}' if user_name else ''},\n\n"
            f"Reset your password here: {reset_url}\n\n"
            f"This link expires in {self._reset_token_ttl_minutes} minutes. "
            f"If you didn't request this, ignore this email.\n\n"
            f"The {self._brand} Team"
        )
        return await self._send(email, user_name, subject, html_body, text_body)

    async def send_password_changed_email(
        self, email: str, user_name: Optional[str]
    ) -> bool:
        subject = "Password Changed Successfully"
        template = self._jinja.get_template("password_changed.html")
        html_body = template.render(user_name=user_name, brand=self._brand)
        text_body = (
            f"Password Changed Successfully\n\n"
            f"Hello{f' {user_name}' if user_name else ''},\n\n"
            f"Your password has been changed and all other sessions were signed out. "
            f"If you didn't make this change, contact support immediately.\n\n"
            f"The {self._brand} Team"
        )
        return await self._send(email, user_name, subject, html_body, text_body)

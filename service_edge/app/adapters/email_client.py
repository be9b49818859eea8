"""
Contact form relay through the transactional e-mail API.
"""

import os
from typing import Any, Dict, Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from service_edge.app.domain.models import ContactMessage
from shared.config import EdgeConfig
from shared.errors import CredentialError, OriginNotAllowed, UpstreamError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "..", "templates")
CONTACT_TEMPLATE = "contact_email.html"
SERVICE_NAME = "e-mail API"


def nl2br(value: str) -> Markup:
    """Escape ``value`` and turn newlines into line breaks."""
    return Markup("<br>").join(escape(value).split("\n"))


def parse_contact(body: Dict[str, Any]) -> ContactMessage:
    values = {
        key: body.get(key) if isinstance(body.get(key), str) else ""
        for key in ("name", "contact_method", "contact_value", "message")
    }
    if not values["name"].strip() or not values["contact_value"].strip() or not values["message"].strip():
        raise ValidationError("Incomplete form: name, contact and message are required.")
    return ContactMessage(**values)


class ContactRelay:
    """Validates contact submissions and sends them as HTML e-mail."""

    def __init__(
        self,
        config: EdgeConfig,
        http_client: httpx.AsyncClient,
        *,
        metrics: Optional[MetricsCollector] = None,
        templates_dir: Optional[str] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("edge.adapters.contact")
        self._client = http_client

        self.jinja_env = Environment(
            loader=FileSystemLoader(templates_dir or TEMPLATES_DIR),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.jinja_env.filters["nl2br"] = nl2br

    def check_origin(self, origin: Optional[str]) -> None:
        if not self.config.allowed_origin or origin != self.config.allowed_origin:
            raise OriginNotAllowed("Unauthorized request origin.")

    def require_configuration(self) -> None:
        missing = [
            name for name, value in (
                ("resend_api_key", self.config.resend_api_key),
                ("sender_email", self.config.sender_email),
                ("recipient_email", self.config.recipient_email),
                ("allowed_origin", self.config.allowed_origin),
            )
            if not value
        ]
        if missing:
            self.logger.error("Mail relay is not configured", missing=missing)
            raise CredentialError("Mail relay is not configured.")

    def render(self, contact: ContactMessage) -> str:
        template = self.jinja_env.get_template(CONTACT_TEMPLATE)
        return template.render(contact=contact)

    def build_payload(self, contact: ContactMessage) -> Dict[str, Any]:
        sender = self.config.sender_email
        return {
            "from": f"Website contact form <{sender}>",
            "to": [self.config.recipient_email],
            "subject": f"New message from website - {contact.name}",
            "html": self.render(contact),
            "reply_to": contact.contact_value if contact.contact_method == "email" else sender,
        }

    async def send(self, origin: Optional[str], body: Dict[str, Any]) -> Dict[str, Any]:
        """Relay one submission; ``origin`` is the caller's Origin header."""
        self.require_configuration()
        self.check_origin(origin)
        contact = parse_contact(body)

        payload = self.build_payload(contact)
        self.logger.info("Sending contact message", sender=self.config.sender_email)
        try:
            response = await self._client.post(
                self.config.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.resend_api_key.get_secret_value()}"},
            )
        except httpx.HTTPError as exc:
            self.logger.error("E-mail API request failed", error=str(exc))
            raise UpstreamError(SERVICE_NAME, "Send failed") from exc

        if self.metrics is not None:
            self.metrics.record_upstream_request("email", response.status_code)
        if response.status_code >= 400:
            self.logger.error("E-mail API rejected message", status_code=response.status_code)
            raise UpstreamError(SERVICE_NAME, "Send failed", response.status_code, response.text)

        return {"success": True}

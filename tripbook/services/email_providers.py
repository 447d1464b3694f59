"""
E-mail providers used by the notification dispatcher.

Both providers take their credentials at construction time and report the
outcome as a ``DeliveryResult`` instead of raising, so the dispatcher can
fall back from one to the other.
"""

import base64
import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, Optional, Protocol

import httpx

from ..config import Settings
from .email_templates import RenderedConfirmation

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[int] = None


class EmailProvider(Protocol):
    name: str

    def send(self, message: RenderedConfirmation) -> DeliveryResult:
        ...


def _post(client: Optional[httpx.Client], timeout: float, url: str, **kwargs) -> httpx.Response:
    if client is not None:
        return client.post(url, timeout=timeout, **kwargs)
    with httpx.Client(timeout=timeout) as owned:
        return owned.post(url, **kwargs)


def _json(response: httpx.Response) -> Dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class PostmarkProvider:
    """Template e-mail through Postmark's /email/withTemplate endpoint"""
    name = "postmark"

    def __init__(
        self,
        server_token: str,
        sender: str,
        template_alias: str = "receipt",
        message_stream: str = "outbound",
        api_url: str = "https://api.postmarkapp.com/email/withTemplate",
        timeout: float = 15,
        client: Optional[httpx.Client] = None,
    ):
        self.server_token = server_token
        self.sender = sender
        self.template_alias = template_alias
        self.message_stream = message_stream
        self.api_url = api_url
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "PostmarkProvider":
        return cls(
            server_token=config.postmark_server_token,
            sender=formataddr((config.product_name, config.sender_email)),
            template_alias=config.postmark_template_alias,
            message_stream=config.postmark_message_stream,
            api_url=config.postmark_api_url,
            timeout=config.notification_timeout_seconds,
        )

    def send(self, message: RenderedConfirmation) -> DeliveryResult:
        if not self.server_token:
            return DeliveryResult(False, self.name, error="Postmark is not configured")

        payload = {
            "From": self.sender,
            "To": message.to,
            "TemplateAlias": self.template_alias,
            "TemplateModel": message.template_model,
            "MessageStream": self.message_stream,
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }
        try:
            response = _post(self._client, self.timeout, self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Postmark request failed: {e}")
            return DeliveryResult(False, self.name, error=str(e))

        data = _json(response)
        error_code = data.get("ErrorCode")
        if response.status_code == 200 and not error_code:
            return DeliveryResult(True, self.name, message_id=data.get("MessageID"))

        error = data.get("Message") or f"HTTP {response.status_code}"
        logger.warning(f"Postmark rejected message ({response.status_code}, code={error_code}): {error}")
        return DeliveryResult(False, self.name, error=error, error_code=error_code)


class GmailProvider:
    """Plain MIME e-mail through the Gmail API using an OAuth refresh token"""
    name = "gmail"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        sender: str,
        token_url: str = "https://oauth2.googleapis.com/token",
        send_url: str = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send",
        timeout: float = 15,
        client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.sender = sender
        self.token_url = token_url
        self.send_url = send_url
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "GmailProvider":
        return cls(
            client_id=config.gmail_client_id,
            client_secret=config.gmail_client_secret,
            refresh_token=config.gmail_refresh_token,
            sender=formataddr((config.product_name, config.sender_email)),
            token_url=config.gmail_token_url,
            send_url=config.gmail_send_url,
            timeout=config.notification_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _access_token(self) -> str:
        response = _post(
            self._client,
            self.timeout,
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        token = _json(response).get("access_token")
        if response.status_code != 200 or not token:
            raise httpx.HTTPStatusError(
                f"Token refresh failed with HTTP {response.status_code}",
                request=response.request,
                response=response,
            )
        return token

    def build_raw_message(self, message: RenderedConfirmation) -> str:
        mime = MIMEMultipart("alternative")
        mime["From"] = self.sender
        mime["To"] = formataddr((message.recipient_name, message.to))
        mime["Subject"] = message.subject
        mime.attach(MIMEText(message.text_body, "plain", "utf-8"))
        mime.attach(MIMEText(message.html_body, "html", "utf-8"))
        return base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii").rstrip("=")

    def send(self, message: RenderedConfirmation) -> DeliveryResult:
        if not self.configured:
            return DeliveryResult(False, self.name, error="Gmail is not configured")

        try:
            access_token = self._access_token()
            response = _post(
                self._client,
                self.timeout,
                self.send_url,
                json={"raw": self.build_raw_message(message)},
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Gmail request failed: {e}")
            return DeliveryResult(False, self.name, error=str(e))

        data = _json(response)
        if response.status_code == 200 and data.get("id"):
            return DeliveryResult(True, self.name, message_id=data["id"])

        error = (data.get("error") or {}).get("message") if isinstance(data.get("error"), dict) else None
        logger.warning(f"Gmail rejected message ({response.status_code}): {error}")
        return DeliveryResult(False, self.name, error=error or f"HTTP {response.status_code}", error_code=response.status_code)

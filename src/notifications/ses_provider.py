"""
Amazon SES transport.

AWS_SES_REGION picks the region. Credentials come from boto3's default
chain, so an instance role works as well as AWS_ACCESS_KEY_ID and
AWS_SECRET_ACCESS_KEY. The sender address has to be verified in SES.
"""

import logging
import os
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from config.settings import get_notification_settings

from .email_provider import DeliveryResult, DeliveryStatus, EmailMessage, EmailProvider

logger = logging.getLogger(__name__)

_CHARSET = "UTF-8"


def _part(data: str) -> Dict[str, str]:
    return {"Data": data, "Charset": _CHARSET}


class SESProvider(EmailProvider):

    def __init__(
        self,
        region: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        client=None,
    ):
        sender = get_notification_settings()
        self.region = region or os.environ.get("AWS_SES_REGION", "us-east-1")
        self.from_email = from_email or sender.from_email
        self.from_name = from_name or sender.platform_name
        self._client = client

    @property
    def provider_name(self) -> str:
        return "ses"

    @property
    def client(self):
        if self._client is None:
            import boto3
            self._client = boto3.client("ses", region_name=self.region)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.region)

    def _request(self, message: EmailMessage) -> Dict[str, Any]:
        """SendEmail keyword arguments for ``message``."""
        name = message.from_name or self.from_name
        address = message.from_email or self.from_email
        body = {}
        if message.body_text:
            body["Text"] = _part(message.body_text)
        if message.body_html:
            body["Html"] = _part(message.body_html)

        request: Dict[str, Any] = {
            "Source": f"{name} <{address}>" if name else address,
            "Destination": {"ToAddresses": [message.to]},
            "Message": {"Subject": _part(message.subject), "Body": body},
        }
        if message.reply_to:
            request["ReplyToAddresses"] = [message.reply_to]
        return request

    def send(self, message: EmailMessage) -> DeliveryResult:
        if not self.is_configured():
            return DeliveryResult.failure(
                self.provider_name, "AWS_SES_REGION is not set", error_code="NOT_CONFIGURED"
            )

        message.validate()

        try:
            response = self.client.send_email(**self._request(message))
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "SEND_ERROR")
            detail = error.get("Message", str(e))
            logger.error(f"SES refused message to {message.to}: {code} {detail}")
            return DeliveryResult.failure(
                self.provider_name,
                detail,
                error_code=code,
                status=DeliveryStatus.BOUNCED if code == "MessageRejected" else DeliveryStatus.FAILED,
            )
        except BotoCoreError as e:
            logger.error(f"Could not reach SES in {self.region}: {e}")
            return DeliveryResult.failure(self.provider_name, str(e))

        message_id = response.get("MessageId", "")
        logger.info(f"[email:ses] delivered to {message.to} ({message_id})")
        return DeliveryResult.sent(self.provider_name, message_id)

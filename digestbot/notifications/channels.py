"""
Notification delivery channels for digestbot.
"""
import asyncio
import logging
import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from typing import Protocol

import aiohttp

from digestbot.config import EmailConfig, TelegramConfig
from digestbot.exceptions import NotificationError
from digestbot.formatters.digest import TELEGRAM_MAX_LENGTH, split_message
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class Channel(Protocol):
    """A destination a formatted message can be delivered to."""
    name: str

    def is_configured(self) -> bool:
        ...

    async def send(self, message: str) -> None:
        ...


class TelegramChannel:
    """
    Sends messages to a chat through the Telegram Bot API.

    Messages longer than the API limit are split and sent part by part, in order.
    """
    name = "telegram"

    def __init__(self, config: TelegramConfig, http: HttpClient, max_length: int = TELEGRAM_MAX_LENGTH):
        self.config = config
        self.http = http
        self.max_length = max_length

    def is_configured(self) -> bool:
        return bool(self.config.bot_token and self.config.chat_id)

    async def _send_part(self, text: str) -> None:
        url = f"{TELEGRAM_API_URL}/bot{self.config.bot_token}/sendMessage"
        response = await self.http.post_json(url, {
            "chat_id": self.config.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        })
        if not isinstance(response, dict) or not response.get("ok"):
            description = response.get("description") if isinstance(response, dict) else response
            raise NotificationError(f"Telegram API rejected message: {description}")

    async def send(self, message: str) -> None:
        """
        Send a message, splitting it when needed.

        Args:
            message: Message text

        Raises:
            NotificationError: If any part could not be delivered
        """
        parts = split_message(message, self.max_length)
        try:
            for part in parts:
                await self._send_part(part)
        except NotificationError:
            raise
        except aiohttp.ClientResponseError as e:
            # str(e) would include the request url, which carries the bot token
            raise NotificationError(
                f"Failed to send Telegram message to {self.config.chat_id}: HTTP {e.status} {e.message}"
            ) from None
        except Exception as e:
            raise NotificationError(f"Failed to send Telegram message to {self.config.chat_id}: {e}") from e
        logger.info(f"Telegram message sent to chat {self.config.chat_id} in {len(parts)} part(s)")


class EmailChannel:
    """
    Sends plain-text messages over SMTP.
    """
    name = "email"

    def __init__(self, config: EmailConfig, subject: str = "Дайджест новостей"):
        self.config = config
        self.subject = subject

    def is_configured(self) -> bool:
        return bool(self.config.host and self.config.sender and self.config.recipients)

    def _build_message(self, message: str) -> MIMEText:
        msg = MIMEText(message, "plain", "utf-8")
        msg["Subject"] = f"{self.subject} {datetime.now().strftime('%d.%m.%Y')}"
        msg["From"] = self.config.sender
        msg["To"] = ", ".join(self.config.recipients)
        return msg

    def _deliver(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=30) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.user:
                server.login(self.config.user, self.config.password)
            server.sendmail(self.config.sender, self.config.recipients, msg.as_string())

    async def send(self, message: str) -> None:
        """
        Send a message to every recipient.

        Args:
            message: Message text

        Raises:
            NotificationError: If the SMTP exchange failed
        """
        try:
            await asyncio.to_thread(self._deliver, self._build_message(message))
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {', '.join(self.config.recipients)}: {e}") from e
        logger.info(f"Email sent to: {', '.join(self.config.recipients)}")

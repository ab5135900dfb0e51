"""Delivery of backup archives to a Telegram chat."""

import logging
import os

import requests

from mrbm.utils.errors import NotifyError, create_error_suggestions

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier:
    """Uploads archives with the Telegram Bot API ``sendDocument`` method."""

    def __init__(self, api_url: str = TELEGRAM_API_URL, timeout: int = 300, verbose: bool = False):
        """
        Initialize notifier.

        Args:
            api_url: Bot API base URL
            timeout: Request timeout in seconds
            verbose: Enable verbose output
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.verbose = verbose

    def send_document(self, bot_token: str, chat_id: str, file_path: str, caption: str = "") -> None:
        """
        Upload ``file_path`` to ``chat_id``.

        Raises:
            NotifyError: If the upload fails or Telegram does not answer 200
        """
        if not bot_token or not chat_id:
            raise NotifyError("Telegram bot token or chat ID is not configured")

        url = f"{self.api_url}/bot{bot_token}/sendDocument"
        data = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption

        try:
            with open(file_path, "rb") as document:
                response = requests.post(
                    url,
                    data=data,
                    files={"document": (os.path.basename(file_path), document)},
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            # the exception text contains the URL and therefore the token
            raise NotifyError(
                "Failed to reach the Telegram API",
                details=str(e).replace(bot_token, "***"),
            )
        except OSError as e:
            raise NotifyError(f"Cannot read archive {file_path}", details=str(e))

        if response.status_code != 200:
            raise NotifyError(
                f"Telegram rejected the upload with HTTP {response.status_code}",
                details=response.text[:500] or None,
                suggestions=create_error_suggestions("telegram_rejected"),
            )

        logger.debug(f"Uploaded {file_path} to Telegram chat {chat_id}")

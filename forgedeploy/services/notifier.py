"""
Reply composition and Telegram delivery for terminal outcomes
"""

import logging
from typing import Optional

import requests

from forgedeploy.clock import format_duration
from forgedeploy.models import DeploymentResult

# Human-readable text for rejection reason codes
REASON_TEXT = {
    'duplicate': "This request was already processed",
    'rate_limited': "Too many requests",
    'text_too_short': "Message too short to be a token request",
    'not_a_request': "This doesn't look like a token request",
    'parse_failed': "Couldn't read the request, please try again",
    'low_confidence': "Not a token request or low confidence",
    'missing_name': "Missing token name",
    'missing_symbol': "Missing token symbol",
    'symbol_length': "Token symbol must be 2-5 characters",
    'in_flight': "A deployment for this request is already running",
}


def describe_reason(reason: Optional[str]) -> str:
    if not reason:
        return "Unknown error"
    return REASON_TEXT.get(reason, reason)


def compose_reply(result: DeploymentResult, explorer_url: str = 'https://suiexplorer.com/object/',
                  trade_url: str = 'https://suiforge.io/trade/', lock_period: str = '30 days') -> str:
    """Reply text for the channel the request arrived on"""
    if result.success and result.metadata is not None:
        metadata = result.metadata
        hashtags = ' '.join(metadata.hashtags)
        return (
            f"🚀 Token Created Successfully! 🚀\n\n"
            f"{metadata.symbol} ({metadata.name}) {metadata.params.emoji}\n\n"
            f"{metadata.description}\n\n"
            f"🌊 Liquidity added and locked for {lock_period}.\n"
            f"🔗 Explorer: {explorer_url}{result.token_id}\n"
            f"🦄 Trade: {trade_url}{metadata.symbol.lower()}\n\n"
            f"{hashtags}"
        ).strip()

    if result.step:
        reason = f"Deployment failed at {result.step}: {describe_reason(result.reason)}"
    else:
        reason = describe_reason(result.reason)
    if result.retry_after:
        reason = f"{reason}. Try again in {format_duration(result.retry_after)}"
    return f"😢 Token Creation Failed\n\nReason: {reason}\n\nPlease try again with a new request."


class TelegramNotifier:
    """Posts outcomes to a Telegram channel through the Bot API"""

    def __init__(self, bot_token: Optional[str], channel_id: Optional[str], enabled: bool = True,
                 timeout: float = 10):
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.enabled = enabled
        self.timeout = timeout
        self.logger = logging.getLogger('forgedeploy')

    def send(self, text: str) -> bool:
        """Never raises; returns whether Telegram accepted the message"""
        if not self.enabled:
            self.logger.info("Telegram notifications disabled")
            return False
        if not self.bot_token or not self.channel_id:
            self.logger.warning("TELEGRAM_BOT_TOKEN or TELEGRAM_CHANNEL_ID not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        data = {
            'chat_id': self.channel_id,  # Works with both @username and numeric IDs
            'text': text,
            'disable_web_page_preview': False,
        }

        try:
            response = requests.post(url, json=data, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"Failed to send Telegram notification: {e}")
            return False

        if response.status_code != 200:
            self.logger.error(f"Telegram HTTP error: {response.status_code}")
            return False

        result = response.json()
        if not result.get('ok'):
            error_msg = result.get('description', 'Unknown error')
            self.logger.error(f"Telegram API error: {error_msg}")
            if "chat not found" in error_msg.lower():
                self.logger.error(f"Channel not found or bot not added; make sure the bot is admin in {self.channel_id}")
            return False

        self.logger.info(f"Telegram notification sent to {self.channel_id}")
        return True

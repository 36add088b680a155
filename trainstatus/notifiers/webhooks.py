"""
Webhook notification module.

Sends status change notifications to registered webhook URLs.
Auto-detects Slack, Discord, and Microsoft Teams URLs and formats
payloads accordingly. All other URLs receive a generic JSON payload.

Configure via the WEBHOOK_URLS environment variable (comma-separated).
"""

import logging

import requests

from .messages import STATUS_MESSAGES

logger = logging.getLogger(__name__)

_WEBHOOK_TIMEOUT = 10  # seconds

_STATUS_COLORS = {
    'clear': 0x44CC11,
    'blocked': 0xE05D44,
}

_STATUS_COLORS_HEX = {
    'clear': '44CC11',
    'blocked': 'E05D44',
}

_USERNAME = 'Naito Train Status'
_TITLE = '9th & Naito Status Update'


def _detect_webhook_type(url):
    """
    Detect the webhook platform from the URL.

    Returns:
        str: One of 'slack', 'discord', 'teams', or 'generic'.
    """
    if 'hooks.slack.com' in url:
        return 'slack'
    if 'discord.com/api/webhooks' in url or 'discordapp.com/api/webhooks' in url:
        return 'discord'
    if 'webhook.office.com' in url or '.logic.azure.com' in url:
        return 'teams'
    return 'generic'


def _message(status, reason):
    message = STATUS_MESSAGES.get(status, f'Status: {status}')
    if reason:
        message = f'{message} ({reason})'
    return message


def _build_slack_payload(status, previous_status, reason):
    return {
        'text': _message(status, reason),
        'username': _USERNAME,
    }


def _build_discord_payload(status, previous_status, reason):
    embed = {
        'title': _TITLE,
        'description': STATUS_MESSAGES.get(status, f'Status: {status}'),
        'color': _STATUS_COLORS.get(status, 0x9F9F9F),
    }
    if reason:
        embed['fields'] = [{'name': 'Details', 'value': reason}]
    return {
        'username': _USERNAME,
        'embeds': [embed],
    }


def _build_teams_payload(status, previous_status, reason):
    """Build a Microsoft Teams incoming webhook payload (MessageCard)."""
    message = _message(status, reason)
    return {
        '@type': 'MessageCard',
        '@context': 'https://schema.org/extensions',
        'summary': message,
        'themeColor': _STATUS_COLORS_HEX.get(status, '9F9F9F'),
        'title': _TITLE,
        'text': message,
    }


def _build_generic_payload(status, previous_status, reason, timestamp):
    return {
        'status': status,
        'previous_status': previous_status,
        'description': STATUS_MESSAGES.get(status, f'Status: {status}'),
        'reason': reason,
        'timestamp': timestamp,
    }


def send_webhooks(urls, status, previous_status=None, reason=None, timestamp=None):
    """
    Send a status change notification to every webhook URL.

    Args:
        urls: Webhook URLs
        status: Current status ('clear' or 'blocked')
        previous_status: Previous status for context (optional)
        reason: Verdict reason (optional)
        timestamp: ISO timestamp string (optional)

    Returns:
        dict: {
            'success': bool (True if all webhooks succeeded),
            'sent': int (number of webhooks delivered),
            'failed': int (number of failed webhooks),
            'error': str or None (first error message, if any),
        }
    """
    if not urls:
        return {
            'success': False,
            'sent': 0,
            'failed': 0,
            'error': 'Not configured (WEBHOOK_URLS not set)',
        }

    sent = 0
    failed = 0
    first_error = None

    for url in urls:
        webhook_type = _detect_webhook_type(url)

        if webhook_type == 'slack':
            payload = _build_slack_payload(status, previous_status, reason)
        elif webhook_type == 'discord':
            payload = _build_discord_payload(status, previous_status, reason)
        elif webhook_type == 'teams':
            payload = _build_teams_payload(status, previous_status, reason)
        else:
            payload = _build_generic_payload(status, previous_status, reason, timestamp)

        try:
            response = requests.post(url, json=payload, timeout=_WEBHOOK_TIMEOUT)
            response.raise_for_status()
            sent += 1
            logger.info(f"Webhook sent ({webhook_type}): {response.status_code}")
        except requests.RequestException as e:
            failed += 1
            error_msg = f'{webhook_type} webhook failed: {e}'
            logger.error(error_msg)
            if first_error is None:
                first_error = error_msg

    return {
        'success': failed == 0 and sent > 0,
        'sent': sent,
        'failed': failed,
        'error': first_error,
    }

"""Notification channels and fan-out dispatch for listing change events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol

import requests

from .config import Settings
from .errors import NotifyError
from .models import (
    ChangeEvent,
    ListingDetails,
    OpenHouseAdded,
    PriceChanged,
    StatusChanged,
)

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_ENDPOINT = (
    "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
)


class Notifier(Protocol):
    """Protocol defining the notifier contract."""

    name: str

    def send(self, event: ChangeEvent, details: ListingDetails) -> None:
        ...


@dataclass
class SlackNotifier:
    """Send Block Kit messages to Slack via Incoming Webhook."""

    webhook_url: str
    timeout: int = 10
    name: str = "slack"

    def send(self, event: ChangeEvent, details: ListingDetails) -> None:
        payload = format_slack_message(event, details)
        try:
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NotifyError(self.name, str(exc)) from exc


@dataclass
class TwilioSmsNotifier:
    """Send one text message per event through the Twilio REST API."""

    account_sid: str
    auth_token: str
    from_number: str
    to_number: str
    timeout: int = 10
    name: str = "sms"

    def send(self, event: ChangeEvent, details: ListingDetails) -> None:
        try:
            response = requests.post(
                TWILIO_MESSAGES_ENDPOINT.format(account_sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data={
                    "To": self.to_number,
                    "From": self.from_number,
                    "Body": format_sms(event, details),
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NotifyError(self.name, str(exc)) from exc


@dataclass
class NotifierDispatch:
    """Fan-out to every channel; a failing channel never blocks the others."""

    notifiers: List[Notifier]

    def notify(self, event: ChangeEvent, details: ListingDetails) -> List[NotifyError]:
        errors: List[NotifyError] = []
        for notifier in self.notifiers:
            channel = getattr(notifier, "name", type(notifier).__name__)
            try:
                notifier.send(event, details)
            except NotifyError as exc:
                logger.error(
                    "Failed to deliver %s for %s via %s: %s",
                    event.event_type,
                    event.listing_id,
                    channel,
                    exc,
                )
                errors.append(exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "Failed to deliver %s for %s via %s",
                    event.event_type,
                    event.listing_id,
                    channel,
                )
                errors.append(NotifyError(channel, str(exc)))
            else:
                logger.debug(
                    "Delivered %s for %s via %s",
                    event.event_type,
                    event.listing_id,
                    channel,
                )
        return errors


def build_dispatch(settings: Settings) -> NotifierDispatch:
    """Construct the configured channels."""
    notifiers: list[Notifier] = []
    if settings.slack_webhook_url:
        notifiers.append(SlackNotifier(webhook_url=settings.slack_webhook_url))
    if settings.twilio is not None:
        notifiers.append(
            TwilioSmsNotifier(
                account_sid=settings.twilio.account_sid,
                auth_token=settings.twilio.auth_token,
                from_number=settings.twilio.from_number,
                to_number=settings.twilio.to_number,
            )
        )
    return NotifierDispatch(notifiers=notifiers)


def format_slack_message(event: ChangeEvent, details: ListingDetails) -> dict:
    """Render a change event as a Slack payload with a plain-text fallback."""
    agent_field = _mrkdwn(
        f"*Listing Agent:*\n{details.agent or 'Unknown'}\n{details.agent_cell or 'No phone'}"
    )
    property_field = _mrkdwn(f"*Property:*\n{_format_location(details)}")

    if isinstance(event, StatusChanged):
        header = "🏠 Listing Status Change Alert!"
        fields = [agent_field, _mrkdwn(f"*Status Change:*\n{event.old} → {event.new}")]
        extra = [property_field, _mrkdwn(f"*Price:* {_money(details.price)}")]
        text = f"Status change for {_format_address(details)}: {event.old} → {event.new}"
    elif isinstance(event, PriceChanged):
        direction = "⬆️ Price Increase" if event.delta > 0 else "⬇️ Price Reduction"
        header = f"{direction} Alert!"
        fields = [
            agent_field,
            _mrkdwn(
                f"*Price Change:*\n{_money(event.old)} → {_money(event.new)}\n"
                f"{_format_price_delta(event)}"
            ),
        ]
        extra = [property_field]
        text = (
            f"Price change for {_format_address(details)}: "
            f"{_money(event.old)} → {_money(event.new)}"
        )
    elif isinstance(event, OpenHouseAdded):
        oh = event.open_house
        header = "📅 New Open House Alert!"
        fields = [
            _mrkdwn(f"*Open House:*\n{oh.date}\n{oh.start_time} - {oh.end_time}"),
            agent_field,
        ]
        extra = [property_field, _mrkdwn(f"*Price:* {_money(details.price)}")]
        text = f"Open house for {_format_address(details)}: {oh.date} {oh.start_time}-{oh.end_time}"
    else:
        raise TypeError(f"Unknown change event: {event!r}")

    return {
        "text": text,
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": header}},
            {"type": "section", "fields": fields},
            {"type": "section", "fields": extra},
        ],
    }


def format_sms(event: ChangeEvent, details: ListingDetails) -> str:
    """Render a change event as a short SMS body."""
    location = _format_address(details)
    agent_lines = [
        f"Agent: {details.agent or 'N/A'}",
        f"Phone: {details.agent_cell or 'N/A'}",
    ]
    if isinstance(event, StatusChanged):
        lines = [
            "🏠 STATUS CHANGE",
            location,
            f"{event.old} → {event.new}",
            _money(details.price),
        ]
    elif isinstance(event, PriceChanged):
        lines = [
            "💰 PRICE UPDATE",
            location,
            f"{_money(event.old)} → {_money(event.new)}",
            f"({_format_price_delta(event)})",
        ]
    elif isinstance(event, OpenHouseAdded):
        oh = event.open_house
        lines = [
            "📅 OPEN HOUSE",
            location,
            f"{oh.date}, {oh.start_time}-{oh.end_time}",
            f"{_money(details.price)} | {_format_rooms(details)}",
        ]
    else:
        raise TypeError(f"Unknown change event: {event!r}")
    return "\n".join(lines + agent_lines)


def _mrkdwn(text: str) -> dict:
    return {"type": "mrkdwn", "text": text}


def _money(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}"


def _format_price_delta(event: PriceChanged) -> str:
    sign = "+" if event.delta > 0 else ""
    return f"{event.percent:+.1f}%, {sign}{_money(event.delta)}"


def _format_address(details: ListingDetails) -> str:
    parts = [value for value in [details.address, details.city] if value]
    return ", ".join(parts) if parts else f"Listing {details.listing_id}"


def _format_location(details: ListingDetails) -> str:
    region = " ".join(value for value in [details.state, details.postal_code] if value)
    second = ", ".join(value for value in [details.city, region] if value)
    lines = [details.address or f"Listing {details.listing_id}"]
    if second:
        lines.append(second)
    return "\n".join(lines)


def _format_rooms(details: ListingDetails) -> str:
    beds = details.beds if details.beds is not None else "?"
    baths = details.baths if details.baths is not None else "?"
    if isinstance(baths, float) and baths.is_integer():
        baths = int(baths)
    return f"{beds}bd {baths}ba"


__all__ = [
    "NotifierDispatch",
    "Notifier",
    "SlackNotifier",
    "TwilioSmsNotifier",
    "build_dispatch",
    "format_slack_message",
    "format_sms",
]

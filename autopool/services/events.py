"""
Qualifying events.

Typed variants of the events that drive the engine. Payloads arrive from a
chain listener or an API call and are parsed once at the boundary.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from web3 import Web3

from autopool.utils.exceptions import EventValidationError


class EventType(StrEnum):
    """Qualifying event kinds."""

    REGISTRATION = "registration"
    SECOND_REFERRAL = "second_referral"
    RETOPUP = "retopup"


@dataclass(frozen=True)
class RegistrationEvent:
    """New participant registered under an optional referrer."""

    event_key: str
    participant_id: str
    wallet_address: str
    referrer_id: str | None = None

    event_type = EventType.REGISTRATION


@dataclass(frozen=True)
class SecondReferralEvent:
    """Existing participant enters auto-pool as their referrer's second referral."""

    event_key: str
    participant_id: str
    ancestor_id: str

    event_type = EventType.SECOND_REFERRAL


@dataclass(frozen=True)
class RetopupEvent:
    """Participant performed a retopup."""

    event_key: str
    participant_id: str

    event_type = EventType.RETOPUP


QualifyingEvent = RegistrationEvent | SecondReferralEvent | RetopupEvent


def _require(payload: dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None or str(value).strip() == "":
        raise EventValidationError(f"Event field '{name}' is required")
    return str(value).strip()


def _event_key(payload: dict[str, Any]) -> str:
    # Event id, or the transaction hash that carried the event
    key = payload.get("event_id") or payload.get("tx_hash")
    if not key:
        raise EventValidationError("Event requires 'event_id' or 'tx_hash'")
    key = str(key).strip()
    if payload.get("log_index") is not None and not payload.get("event_id"):
        key = f"{key}:{payload['log_index']}"
    return key


def parse_event(payload: dict[str, Any]) -> QualifyingEvent:
    """
    Parse an untyped payload into a qualifying event.

    Raises:
        EventValidationError: Unknown type or missing fields
    """
    raw_type = str(payload.get("event_type", "")).strip()
    normalized = raw_type.replace("-", "_").lower()
    aliases = {
        "registrationaccepted": EventType.REGISTRATION,
        "secondreferral": EventType.SECOND_REFERRAL,
        "retopupaccepted": EventType.RETOPUP,
    }
    try:
        event_type = aliases.get(normalized.replace("_", "")) or EventType(normalized)
    except ValueError as exc:
        raise EventValidationError(f"Unknown event type: {raw_type!r}") from exc

    event_key = _event_key(payload)
    participant_id = _require(payload, "participant_id")

    if event_type == EventType.REGISTRATION:
        wallet = _require(payload, "wallet_address")
        if not Web3.is_address(wallet):
            raise EventValidationError(f"Invalid wallet address: {wallet}")
        referrer = payload.get("referrer_id")
        return RegistrationEvent(
            event_key=event_key,
            participant_id=participant_id,
            wallet_address=wallet.lower(),
            referrer_id=str(referrer).strip() if referrer else None,
        )

    if event_type == EventType.SECOND_REFERRAL:
        return SecondReferralEvent(
            event_key=event_key,
            participant_id=participant_id,
            ancestor_id=_require(payload, "ancestor_id"),
        )

    return RetopupEvent(event_key=event_key, participant_id=participant_id)

"""
Event catalog: the closed set of event names and their payload schemas.

Each event name is tied to a pydantic model. ``EVENT_SCHEMAS`` is the tagged
mapping from name to model, so a payload can be checked against the shape
its name promises. Validation is advisory: mismatches are logged and never
block delivery unless a caller explicitly asks for strict mode.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import EventValidationError
from .types import AnalyticsEvent, EventContext, now_ms


logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """Canonical event names. Use these instead of string literals."""
    # User & authentication
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"

    # Wallet
    WALLET_CONNECTED = "wallet_connected"
    WALLET_DISCONNECTED = "wallet_disconnected"

    # Safe management
    SAFE_CREATED = "safe_created"
    SAFE_ACTIVATED = "safe_activated"
    SAFE_OPENED = "safe_opened"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_CONFIRMED = "transaction_confirmed"
    TRANSACTION_EXECUTED = "transaction_executed"

    # Safe apps
    SAFE_APP_LAUNCHED = "safe_app_launched"
    SAFE_APP_INTERACTION = "safe_app_interaction"

    # Navigation
    PAGE_VIEW = "page_view"

    # UI interactions
    CLICKED_CTA = "clicked_cta"
    MODAL_OPENED = "modal_opened"
    MODAL_CLOSED = "modal_closed"

    # Features & errors
    FEATURE_USED = "feature_used"
    ERROR_SHOWN = "error_shown"


class EventPayload(BaseModel):
    """Base for catalog payloads. Extra keys are tolerated (enrichment adds them)."""
    model_config = ConfigDict(extra="allow")


# =============================================================================
# Payload schemas
# =============================================================================

class UserSignedIn(EventPayload):
    method: Literal["password", "wallet", "social"]
    provider: Optional[str] = None
    experiment: Optional[str] = None


class UserSignedOut(EventPayload):
    session_duration: Optional[float] = None


class WalletConnected(EventPayload):
    wallet_label: str
    wallet_address: str
    chain_id: str


class WalletDisconnected(EventPayload):
    wallet_label: str
    session_duration: Optional[float] = None


class SafeCreated(EventPayload):
    owners: int
    threshold: int
    chain_id: str
    safe_address: str
    creation_method: Optional[Literal["counterfactual", "direct"]] = None


class SafeActivated(EventPayload):
    safe_address: str
    chain_id: str
    activation_method: Optional[Literal["with_tx", "without_tx"]] = None


class SafeOpened(EventPayload):
    safe_address: str
    chain_id: str
    source: Optional[Literal["direct", "shared_link", "bookmark"]] = None


TxType = Literal[
    "owner_add",
    "owner_remove",
    "owner_swap",
    "owner_threshold_change",
    "guard_remove",
    "module_remove",
    "transfer_token",
    "batch_transfer_token",
    "transfer_nft",
    "batch",
    "rejection",
    "typed_message",
    "nested_safe",
    "walletconnect",
    "custom",
    "native_bridge",
    "native_swap",
    "native_earn",
    "native_swap_lifi",
    "bulk_execute",
    "activate_without_tx",
    "activate_with_tx",
]


class TransactionCreated(EventPayload):
    tx_type: TxType
    safe_address: str
    chain_id: str
    amount: Optional[str] = None
    asset: Optional[str] = None
    creation_method: Optional[
        Literal["standard", "via_role", "via_spending_limit", "via_proposer", "via_parent"]
    ] = None


class TransactionConfirmed(EventPayload):
    tx_type: str
    safe_address: str
    chain_id: str
    confirmation_method: Optional[Literal["standard", "via_parent", "in_parent"]] = None


class TransactionExecuted(EventPayload):
    tx_type: str
    safe_address: str
    chain_id: str
    execution_method: Optional[
        Literal["standard", "speed_up", "via_spending_limit", "via_role", "via_parent", "in_parent"]
    ] = None


class SafeAppLaunched(EventPayload):
    app_name: str
    app_url: str
    category: Optional[str] = None
    safe_address: str
    chain_id: str


class SafeAppInteraction(EventPayload):
    app_name: str
    app_url: str
    action: Literal[
        "pin",
        "unpin",
        "copy_share_url",
        "search",
        "add_custom_app",
        "open_transaction_modal",
        "propose_transaction",
    ]
    safe_address: str
    chain_id: str


class PageView(EventPayload):
    page_title: Optional[str] = None
    page_path: str
    page_url: Optional[str] = None
    referrer: Optional[str] = None


class ClickedCta(EventPayload):
    label: str
    page: str
    location: Optional[str] = None


class ModalOpened(EventPayload):
    modal_name: str
    trigger: Optional[str] = None


class ModalClosed(EventPayload):
    modal_name: str
    action: Optional[Literal["close_button", "backdrop", "escape", "success", "cancel"]] = None


class FeatureUsed(EventPayload):
    feature_name: str
    context: Optional[str] = None
    value: Optional[Union[str, float]] = None


class ErrorShown(EventPayload):
    error_code: str
    error_message: Optional[str] = None
    context: Optional[str] = None


EVENT_SCHEMAS: dict[EventName, type[EventPayload]] = {
    EventName.USER_SIGNED_IN: UserSignedIn,
    EventName.USER_SIGNED_OUT: UserSignedOut,
    EventName.WALLET_CONNECTED: WalletConnected,
    EventName.WALLET_DISCONNECTED: WalletDisconnected,
    EventName.SAFE_CREATED: SafeCreated,
    EventName.SAFE_ACTIVATED: SafeActivated,
    EventName.SAFE_OPENED: SafeOpened,
    EventName.TRANSACTION_CREATED: TransactionCreated,
    EventName.TRANSACTION_CONFIRMED: TransactionConfirmed,
    EventName.TRANSACTION_EXECUTED: TransactionExecuted,
    EventName.SAFE_APP_LAUNCHED: SafeAppLaunched,
    EventName.SAFE_APP_INTERACTION: SafeAppInteraction,
    EventName.PAGE_VIEW: PageView,
    EventName.CLICKED_CTA: ClickedCta,
    EventName.MODAL_OPENED: ModalOpened,
    EventName.MODAL_CLOSED: ModalClosed,
    EventName.FEATURE_USED: FeatureUsed,
    EventName.ERROR_SHOWN: ErrorShown,
}


# =============================================================================
# Validation toggle
# =============================================================================

_PRODUCTION_ENVS = {"production", "prod", "prd"}


def default_validation_enabled() -> bool:
    """Validation default for the current ``ANALYTICS_ENV``; production disables it."""
    env = os.environ.get("ANALYTICS_ENV", "development").strip().lower()
    return env not in _PRODUCTION_ENVS


_validation_enabled: bool = default_validation_enabled()


def validation_enabled() -> bool:
    """Whether catalog validation runs (off in production builds)."""
    return _validation_enabled


def set_validation_enabled(enabled: bool) -> None:
    global _validation_enabled
    _validation_enabled = bool(enabled)


def _lookup(name: str | EventName) -> EventName | None:
    try:
        return EventName(name)
    except ValueError:
        return None


def is_known_event(name: str | EventName) -> bool:
    return _lookup(name) is not None


def schema_for(name: str | EventName) -> type[EventPayload] | None:
    known = _lookup(name)
    return EVENT_SCHEMAS[known] if known is not None else None


def validate_event(
    name: str | EventName,
    payload: Any,
    *,
    strict: bool = False,
    enabled: bool | None = None,
) -> bool:
    """
    Check ``payload`` against the catalog schema for ``name``.

    Returns True when the payload is valid, validation is disabled, or the
    name is not in the catalog. A mismatch is logged and returns False; with
    ``strict=True`` it raises EventValidationError instead. ``enabled``
    overrides the process-wide toggle for this call.
    """
    if not (_validation_enabled if enabled is None else enabled):
        return True

    schema = schema_for(name)
    if schema is None:
        return True

    try:
        schema.model_validate(payload)
    except ValidationError as e:
        event_name = name.value if isinstance(name, EventName) else name
        if strict:
            raise EventValidationError(event_name, e) from e
        logger.warning(f"Event validation failed for '{event_name}': {e.error_count()} error(s): {e}")
        return False

    return True


def event(
    name: str | EventName,
    payload: Mapping[str, Any] | EventPayload | None = None,
    context: EventContext | None = None,
) -> AnalyticsEvent:
    """
    Build an event stamped with the current time.

    ``payload`` may be a plain mapping or the catalog model for ``name``.
    Passing another event's model is a programming error and raises TypeError.
    Mapping payloads are validated (advisory only).
    """
    event_name = name.value if isinstance(name, EventName) else str(name)

    if isinstance(payload, BaseModel):
        expected = schema_for(event_name)
        if expected is not None and not isinstance(payload, expected):
            raise TypeError(
                f"Event '{event_name}' expects a {expected.__name__} payload, "
                f"got {type(payload).__name__}"
            )
        data = payload.model_dump(exclude_none=True)
    else:
        data = dict(payload or {})
        validate_event(event_name, data)

    return AnalyticsEvent(
        name=event_name,
        payload=data,
        context=dict(context) if context is not None else None,
        timestamp=now_ms(),
    )

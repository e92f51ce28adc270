"""
AccessGuard - session-level subscription gate.

States:
    LOADING    actor not yet resolved; render a neutral indicator, run no checks
    RESOLVING  actor known, subscription fetch in flight; same indicator
    ALLOWED    render the protected subtree
    DENIED     render a blocking panel with the cause, a checkout action and
               a sign-out action

Transitions:
    set_actor(actor)           LOADING/ALLOWED/DENIED -> RESOLVING (new session key)
    fetch resolves             RESOLVING -> ALLOWED | DENIED
    fetch fails                RESOLVING -> ALLOWED (fail-open, logged)
    sign_out()                 any -> LOADING (no actor)
    teardown()                 in-flight fetch cancelled, late results discarded

The subscription record is fetched once per (actor_id, tenant_id) pair and
cached in a guard-scoped SessionSubscriptionCache. Re-fetch happens only
when the pair changes. There is no retry: a failure degrades to fail-open
for the session and the next guard mount re-attempts.

Lookup failure policy is configurable (LookupFailurePolicy); the default is
FAIL_OPEN. See SUBSCRIPTION_LOOKUP_FAIL_CLOSED.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar, Union

from access_core.entitlements.cache import SessionKey, SessionSubscriptionCache
from access_core.entitlements.errors import (
    EntitlementError,
    format_for_display,
    map_external_error,
    should_offer_upgrade,
)
from access_core.entitlements.exceptions import CheckoutError, InvalidGuardStateError
from access_core.entitlements.interfaces import ActorContextProvider, CheckoutInitiator, SubscriptionReader
from access_core.entitlements.models import Actor, PlanRef, SubscriptionRecord
from access_core.entitlements.subscription import (
    DENIAL_DESCRIPTIONS,
    DenialCause,
    classify_denial,
    denial_error,
    resolve_access,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAIL_CLOSED_ENV = "SUBSCRIPTION_LOOKUP_FAIL_CLOSED"
DEFAULT_CURRENCY = "KES"


class GuardState(str, Enum):
    LOADING = "loading"
    RESOLVING = "resolving"
    ALLOWED = "allowed"
    DENIED = "denied"


class LookupFailurePolicy(str, Enum):
    """What the guard does when the subscription fetch itself fails."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"

    @classmethod
    def from_env(cls) -> "LookupFailurePolicy":
        value = os.getenv(FAIL_CLOSED_ENV, "").strip().lower()
        if value in ("1", "true", "yes"):
            return cls.FAIL_CLOSED
        return cls.FAIL_OPEN


def format_price(price: Optional[float], currency: str = DEFAULT_CURRENCY) -> Optional[str]:
    if price is None:
        return None
    return f"{currency} {price:,.2f}"


@dataclass(frozen=True)
class LoadingIndicator:
    """Neutral indicator rendered while LOADING or RESOLVING."""

    state: GuardState


@dataclass(frozen=True)
class DenialPanel:
    """Blocking panel rendered in the DENIED state."""

    cause: DenialCause
    description: str
    error: EntitlementError
    primary_action: str
    plan: Optional[PlanRef] = None
    title: str = "Subscription Required"
    secondary_action: str = "Sign Out"

    @property
    def offer_upgrade(self) -> bool:
        return should_offer_upgrade(self.error)

    @property
    def display_text(self) -> str:
        return format_for_display(self.error)

    @property
    def plan_summary(self) -> Optional[str]:
        """e.g. "Starter Plan - KES 2,500.00 per month"."""
        if self.plan is None or not self.plan.name:
            return None
        summary = f"{self.plan.name} Plan"
        price = format_price(self.plan.price)
        if price:
            summary += f" - {price}"
            if self.plan.period:
                summary += f" per {self.plan.period}"
        return summary

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "cause": self.cause.value,
            "description": self.description,
            "plan": self.plan_summary,
            "primary_action": self.primary_action,
            "secondary_action": self.secondary_action,
            "offer_upgrade": self.offer_upgrade,
            "display_text": self.display_text,
            "error": self.error.to_dict(),
        }


def build_denial_panel(record: Optional[SubscriptionRecord], now: datetime) -> DenialPanel:
    cause = classify_denial(record, now)
    return DenialPanel(
        cause=cause,
        description=DENIAL_DESCRIPTIONS[cause],
        error=denial_error(record, now),
        primary_action="Complete Payment" if cause == DenialCause.PAYMENT_PENDING else "Upgrade Now",
        plan=record.plan if record is not None else None,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessGuard:
    """
    Subscription gate for one guarded session.

    Usage:
        guard = AccessGuard(reader, checkout=checkout_client)
        state = await guard.resolve(actor)
        view = guard.render(lambda: protected_view())
        ...
        guard.teardown()

    set_actor() schedules the fetch on the running event loop and must be
    called from within one.
    """

    def __init__(
        self,
        reader: SubscriptionReader,
        checkout: Optional[CheckoutInitiator] = None,
        on_sign_out: Optional[Callable[[], Awaitable[None]]] = None,
        cache: Optional[SessionSubscriptionCache] = None,
        clock: Callable[[], datetime] = _utcnow,
        failure_policy: Optional[LookupFailurePolicy] = None,
    ):
        self._reader = reader
        self._checkout = checkout
        self._on_sign_out = on_sign_out
        self._cache = cache if cache is not None else SessionSubscriptionCache()
        self._clock = clock
        self._failure_policy = failure_policy or LookupFailurePolicy.from_env()

        self._state = GuardState.LOADING
        self._actor: Optional[Actor] = None
        self._record: Optional[SubscriptionRecord] = None
        self._panel: Optional[DenialPanel] = None
        self._task: Optional[asyncio.Task] = None
        self._torn_down = False
        self._context: Optional[ActorContextProvider] = None

    @classmethod
    def for_context(
        cls,
        context: ActorContextProvider,
        reader: SubscriptionReader,
        **kwargs,
    ) -> "AccessGuard":
        """Build a guard whose sign-out action goes through the context provider."""
        guard = cls(reader, on_sign_out=context.sign_out, **kwargs)
        guard._context = context
        return guard

    async def sync_with_context(self) -> GuardState:
        """Resolve against the context provider's current actor."""
        if self._context is None:
            raise InvalidGuardStateError("AccessGuard was not built from an actor context")
        return await self.resolve(self._context.current_actor())

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def actor(self) -> Optional[Actor]:
        return self._actor

    @property
    def record(self) -> Optional[SubscriptionRecord]:
        return self._record

    @property
    def panel(self) -> Optional[DenialPanel]:
        return self._panel

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def set_actor(self, actor: Optional[Actor]) -> GuardState:
        """
        Feed the current actor into the machine.

        None keeps/returns the guard to LOADING. The same (actor, tenant)
        pair never triggers a second fetch.
        """
        if self._torn_down:
            raise InvalidGuardStateError("AccessGuard has been torn down")

        if actor is None:
            self._cancel_fetch()
            self._actor = None
            self._set_state(GuardState.LOADING)
            return self._state

        if (
            self._actor is not None
            and self._actor.session_key == actor.session_key
            and self._state != GuardState.LOADING
        ):
            self._actor = actor
            return self._state

        self._cancel_fetch()
        self._actor = actor
        self._record = None
        self._panel = None

        cached = self._cache.get(actor.session_key)
        if cached is not None:
            self._apply(cached.record)
            return self._state

        self._set_state(GuardState.RESOLVING)
        self._task = asyncio.get_running_loop().create_task(
            self._fetch(actor.session_key, actor.tenant_id)
        )
        return self._state

    async def wait_until_settled(self) -> GuardState:
        """Wait for the in-flight fetch (if any) and return the state."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._state

    async def resolve(self, actor: Optional[Actor]) -> GuardState:
        """set_actor() then wait for the fetch to settle."""
        self.set_actor(actor)
        return await self.wait_until_settled()

    async def sign_out(self) -> None:
        """Sign the actor out and exit the machine back to LOADING."""
        actor = self._actor
        self._cancel_fetch()
        if actor is not None:
            self._cache.invalidate(actor.session_key)
        self._actor = None
        self._record = None
        self._panel = None
        if not self._torn_down:
            self._set_state(GuardState.LOADING)

        if self._on_sign_out is not None:
            await self._on_sign_out()

        logger.info(
            "Signed out from access guard",
            extra={"user_id": actor.user_id if actor else None},
        )

    def teardown(self) -> None:
        """
        Tear the guarded scope down.

        Cancels the in-flight fetch; any result that still arrives is
        discarded and the state is not mutated again.
        """
        self._torn_down = True
        self._cancel_fetch()

    # ------------------------------------------------------------------
    # Rendering and remediation
    # ------------------------------------------------------------------

    def render(self, protected: Callable[[], T]) -> Union[T, LoadingIndicator, DenialPanel]:
        """
        Return what the guarded scope should show.

        The protected callable is only invoked in the ALLOWED state.
        """
        if self._state == GuardState.ALLOWED:
            return protected()
        if self._state == GuardState.DENIED:
            return self._panel
        return LoadingIndicator(state=self._state)

    async def start_checkout(self) -> str:
        """
        Primary remediation action for the DENIED state.

        Returns:
            Redirect URL from the checkout initiator

        Raises:
            InvalidGuardStateError: If the guard is not DENIED
            CheckoutError: If no checkout initiator is configured or it fails
        """
        if self._state != GuardState.DENIED or self._actor is None:
            raise InvalidGuardStateError(f"Checkout is only available when denied (state={self._state.value})")
        if self._checkout is None:
            raise CheckoutError("No checkout initiator configured")

        plan = self._record.plan if self._record is not None else None
        try:
            url = await self._checkout.create_checkout(plan, self._actor.tenant_id, email=self._actor.email)
        except CheckoutError:
            logger.error(
                "Error creating checkout",
                extra={"tenant_id": self._actor.tenant_id, "plan_id": plan.plan_id if plan else None},
                exc_info=True,
            )
            raise

        logger.info(
            "Checkout initiated from access guard",
            extra={"tenant_id": self._actor.tenant_id, "plan_id": plan.plan_id if plan else None},
        )
        return url

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch(self, key: SessionKey, tenant_id: str) -> None:
        try:
            record = await self._reader.read(tenant_id)
        except Exception as e:
            if self._is_stale(key):
                logger.debug(
                    "Discarding stale subscription fetch error",
                    extra={"tenant_id": tenant_id, "error": str(e)},
                )
                return
            self._on_fetch_error(tenant_id, e)
            return

        if self._is_stale(key):
            logger.debug("Discarding stale subscription result", extra={"tenant_id": tenant_id})
            return

        self._cache.set(key, record)
        self._apply(record)

    def _on_fetch_error(self, tenant_id: str, error: Exception) -> None:
        if self._failure_policy == LookupFailurePolicy.FAIL_CLOSED:
            logger.error(
                "Subscription fetch failed - denying access (fail-closed)",
                extra={"tenant_id": tenant_id, "error": str(error)},
                exc_info=True,
            )
            mapped = map_external_error(error)
            self._panel = DenialPanel(
                cause=DenialCause.LOOKUP_FAILED,
                description=DENIAL_DESCRIPTIONS[DenialCause.LOOKUP_FAILED],
                error=mapped,
                primary_action="Try Again",
            )
            self._set_state(GuardState.DENIED)
            return

        logger.error(
            "Subscription fetch failed - allowing access (fail-open)",
            extra={"tenant_id": tenant_id, "error": str(error)},
            exc_info=True,
        )
        self._set_state(GuardState.ALLOWED)

    def _apply(self, record: Optional[SubscriptionRecord]) -> None:
        now = self._clock()
        self._record = record
        if resolve_access(record, now):
            self._panel = None
            self._set_state(GuardState.ALLOWED)
            return

        self._panel = build_denial_panel(record, now)
        self._set_state(GuardState.DENIED)
        logger.info(
            "Subscription access denied",
            extra={
                "tenant_id": self._actor.tenant_id if self._actor else None,
                "status": record.status.value if record else None,
                "cause": self._panel.cause.value,
            },
        )

    def _is_stale(self, key: SessionKey) -> bool:
        return self._torn_down or self._actor is None or self._actor.session_key != key

    def _cancel_fetch(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _set_state(self, state: GuardState) -> None:
        if state != self._state:
            logger.debug(
                "Access guard transition",
                extra={"from_state": self._state.value, "to_state": state.value},
            )
        self._state = state

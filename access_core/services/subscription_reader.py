"""
SQLAlchemy-backed subscription reader.

Reads tenant_subscription_details for a tenant. Storage errors are raised
as SubscriptionLookupError; the resolver and AccessGuard treat them as
fail-open.
"""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from access_core.entitlements.exceptions import SubscriptionLookupError
from access_core.entitlements.interfaces import SubscriptionReader
from access_core.entitlements.models import SubscriptionRecord
from access_core.models.subscription_details import TenantSubscriptionDetails

logger = logging.getLogger(__name__)


class SqlSubscriptionReader(SubscriptionReader):
    """
    Subscription reader over the tenant_subscription_details read model.

    The blocking query runs in a worker thread so the event loop is not
    blocked while AccessGuard waits.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def read_sync(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        """
        Synchronous lookup.

        Raises:
            SubscriptionLookupError: On any database error
        """
        session = self._session_factory()
        try:
            row = session.query(TenantSubscriptionDetails).filter(
                TenantSubscriptionDetails.tenant_id == tenant_id
            ).first()
            record = row.to_record() if row is not None else None
        except SQLAlchemyError as e:
            logger.error(
                "Subscription query failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
            raise SubscriptionLookupError(tenant_id, str(e)) from e
        finally:
            session.close()

        if record is None:
            logger.debug("No subscription for tenant", extra={"tenant_id": tenant_id})
        return record

    async def read(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        return await asyncio.to_thread(self.read_sync, tenant_id)

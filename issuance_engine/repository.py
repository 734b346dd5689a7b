"""
Issuance Engine - Repository.

============================================================
PURPOSE
============================================================
Database operations for issuance audit persistence.

RESPONSIBILITIES:
- Save/load issuance and redemption events
- Save/load fee update events
- Save/load settings snapshots
- Save reconciliation runs
- Query issuance statistics

Engine listeners are synchronous; EventRecorder buffers
committed events and writes them on flush().

============================================================
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from .reconciliation import ReconciliationResult
from .types import (
    BasketTokenIssued,
    BasketTokenRedeemed,
    FeeRecipientUpdated,
    IssuanceEvent,
    IssuanceSettings,
    IssueFeeUpdated,
    RedeemFeeUpdated,
)
from .models import (
    IssuanceEventModel,
    FeeUpdateEventModel,
    IssuanceSettingsModel,
    ReconciliationLogModel,
)


logger = logging.getLogger(__name__)


# ============================================================
# ISSUANCE REPOSITORY
# ============================================================

class IssuanceRepository:
    """
    Repository for issuance data persistence.

    Handles all database operations for the issuance engine.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy async session
        """
        self._session = session

    # --------------------------------------------------------
    # EVENT OPERATIONS
    # --------------------------------------------------------

    async def save_event(self, event: IssuanceEvent):
        """Save any engine event to its table."""
        if isinstance(event, BasketTokenIssued):
            return await self.save_issuance_event(event)
        if isinstance(event, BasketTokenRedeemed):
            return await self.save_redemption_event(event)
        if isinstance(event, (FeeRecipientUpdated, IssueFeeUpdated, RedeemFeeUpdated)):
            return await self.save_fee_update(event)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    async def save_issuance_event(self, event: BasketTokenIssued) -> IssuanceEventModel:
        model = IssuanceEventModel(
            event_id=str(uuid.uuid4()),
            event_type=event.event_type,
            basket_token=event.basket_token,
            account=event.issuer,
            to=event.to,
            hook_contract=event.hook_contract,
            quantity=str(event.quantity),
            manager_fee=str(event.manager_fee),
            protocol_fee=str(event.protocol_fee),
            emitted_at=event.emitted_at,
        )
        self._session.add(model)
        await self._session.commit()
        return model

    async def save_redemption_event(self, event: BasketTokenRedeemed) -> IssuanceEventModel:
        model = IssuanceEventModel(
            event_id=str(uuid.uuid4()),
            event_type=event.event_type,
            basket_token=event.basket_token,
            account=event.redeemer,
            to=event.to,
            hook_contract=event.hook_contract,
            quantity=str(event.quantity),
            manager_fee=str(event.manager_fee),
            protocol_fee=str(event.protocol_fee),
            emitted_at=event.emitted_at,
        )
        self._session.add(model)
        await self._session.commit()
        return model

    async def save_fee_update(self, event: IssuanceEvent) -> FeeUpdateEventModel:
        """Save a fee recipient / issue fee / redeem fee change."""
        new_fee: Optional[str] = None
        new_fee_recipient: Optional[str] = None
        if isinstance(event, IssueFeeUpdated):
            new_fee = str(event.new_issue_fee)
        elif isinstance(event, RedeemFeeUpdated):
            new_fee = str(event.new_redeem_fee)
        else:
            new_fee_recipient = event.new_fee_recipient

        model = FeeUpdateEventModel(
            event_id=str(uuid.uuid4()),
            event_type=event.event_type,
            basket_token=event.basket_token,
            new_fee=new_fee,
            new_fee_recipient=new_fee_recipient,
            emitted_at=event.emitted_at,
        )
        self._session.add(model)
        await self._session.commit()
        return model

    async def get_events_for_basket(
        self,
        basket_token: str,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[IssuanceEventModel]:
        """Get issuance / redemption events of a basket token, oldest first."""
        query = select(IssuanceEventModel).where(IssuanceEventModel.basket_token == basket_token)
        if event_type:
            query = query.where(IssuanceEventModel.event_type == event_type)
        query = query.order_by(IssuanceEventModel.emitted_at, IssuanceEventModel.id).limit(limit)

        result = await self._session.execute(query)
        return list(result.scalars())

    async def get_fee_updates_for_basket(self, basket_token: str) -> List[FeeUpdateEventModel]:
        result = await self._session.execute(
            select(FeeUpdateEventModel)
            .where(FeeUpdateEventModel.basket_token == basket_token)
            .order_by(FeeUpdateEventModel.emitted_at, FeeUpdateEventModel.id)
        )
        return list(result.scalars())

    # --------------------------------------------------------
    # SETTINGS OPERATIONS
    # --------------------------------------------------------

    async def save_settings(self, basket_token: str, settings: IssuanceSettings) -> IssuanceSettingsModel:
        """Save or update the settings snapshot of a basket token."""
        hook = settings.manager_issuance_hook
        hook_address = getattr(hook, "address", None) if hook is not None else None

        existing = await self._session.get(IssuanceSettingsModel, basket_token)
        if existing:
            existing.max_manager_fee = str(settings.max_manager_fee)
            existing.manager_issue_fee = str(settings.manager_issue_fee)
            existing.manager_redeem_fee = str(settings.manager_redeem_fee)
            existing.fee_recipient = settings.fee_recipient
            existing.manager_issuance_hook = hook_address
            await self._session.commit()
            return existing

        model = IssuanceSettingsModel(
            basket_token=basket_token,
            max_manager_fee=str(settings.max_manager_fee),
            manager_issue_fee=str(settings.manager_issue_fee),
            manager_redeem_fee=str(settings.manager_redeem_fee),
            fee_recipient=settings.fee_recipient,
            manager_issuance_hook=hook_address,
        )
        self._session.add(model)
        await self._session.commit()
        return model

    async def get_settings(self, basket_token: str) -> Optional[IssuanceSettingsModel]:
        return await self._session.get(IssuanceSettingsModel, basket_token)

    # --------------------------------------------------------
    # RECONCILIATION OPERATIONS
    # --------------------------------------------------------

    async def save_reconciliation_result(self, result: ReconciliationResult) -> ReconciliationLogModel:
        """Save reconciliation result."""
        model = ReconciliationLogModel(
            run_id=result.run_id,
            basket_token=result.basket_token,
            total_supply=str(result.total_supply),
            components_checked=result.components_checked,
            mismatches_found=len(result.mismatches),
            is_consistent=result.is_consistent,
            has_critical=result.has_critical,
            mismatches_json=json.dumps([
                {
                    "type": m.mismatch_type.value,
                    "severity": m.severity.value,
                    "component": m.component,
                    "module": m.module,
                    "expected": str(m.expected_value) if m.expected_value is not None else None,
                    "actual": str(m.actual_value) if m.actual_value is not None else None,
                    "message": m.message,
                }
                for m in result.mismatches
            ]) if result.mismatches else None,
            started_at=result.started_at,
        )
        self._session.add(model)
        await self._session.commit()
        return model

    async def get_recent_reconciliation_logs(self, limit: int = 10) -> List[ReconciliationLogModel]:
        result = await self._session.execute(
            select(ReconciliationLogModel)
            .order_by(desc(ReconciliationLogModel.started_at))
            .limit(limit)
        )
        return list(result.scalars())

    # --------------------------------------------------------
    # STATISTICS
    # --------------------------------------------------------

    async def get_issuance_stats(
        self,
        basket_token: str,
        since: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Get issuance statistics of a basket token."""
        query = select(IssuanceEventModel).where(IssuanceEventModel.basket_token == basket_token)
        if since is not None:
            query = query.where(IssuanceEventModel.emitted_at >= since)

        result = await self._session.execute(query)
        events = list(result.scalars())

        issued = 0
        redeemed = 0
        manager_fees = 0
        protocol_fees = 0
        by_type: Dict[str, int] = {}

        for event in events:
            by_type[event.event_type] = by_type.get(event.event_type, 0) + 1
            if event.event_type == BasketTokenIssued.event_type:
                issued += int(event.quantity)
            else:
                redeemed += int(event.quantity)
            manager_fees += int(event.manager_fee)
            protocol_fees += int(event.protocol_fee)

        return {
            "total_events": len(events),
            "by_type": by_type,
            "total_issued": issued,
            "total_redeemed": redeemed,
            "total_manager_fees": manager_fees,
            "total_protocol_fees": protocol_fees,
        }


# ============================================================
# EVENT RECORDER
# ============================================================

class EventRecorder:
    """
    Buffers committed engine events for persistence.

    Usage:
        recorder = EventRecorder()
        engine.add_listener(recorder)
        ...
        await recorder.flush(IssuanceRepository(session))
    """

    def __init__(self):
        self._pending: List[IssuanceEvent] = []

    @classmethod
    def attach(cls, engine) -> "EventRecorder":
        """Create a recorder listening to `engine` when its config persists events."""
        recorder = cls()
        if engine.config.persistence.persist_events:
            engine.add_listener(recorder)
        else:
            logger.info(f"Event persistence disabled for engine {engine.address}")
        return recorder

    def __call__(self, event: IssuanceEvent) -> None:
        self._pending.append(event)

    @property
    def pending(self) -> List[IssuanceEvent]:
        return list(self._pending)

    async def flush(self, repository: IssuanceRepository) -> int:
        """
        Write buffered events in emission order.

        Events that fail to save stay buffered.

        Returns:
            Number of events written
        """
        written = 0
        while self._pending:
            event = self._pending[0]
            await repository.save_event(event)
            self._pending.pop(0)
            written += 1
        if written:
            logger.info(f"Persisted {written} issuance events")
        return written

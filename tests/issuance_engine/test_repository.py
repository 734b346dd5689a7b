"""
Tests for issuance audit persistence.

============================================================
PURPOSE
============================================================
Event, settings and reconciliation persistence against an
in-memory SQLite database.

TEST CATEGORIES:
- Events: issuance / redemption / fee update rows
- Recorder: buffering committed engine events
- Settings: upsert of the latest snapshot
- Reconciliation: run logs
- Statistics: aggregated issuance figures

============================================================
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FEE_RECIPIENT, ISSUER, MANAGER, RECIPIENT

from issuance_engine import (
    ZERO_ADDRESS,
    BasketTokenIssued,
    BasketTokenRedeemed,
    EventRecorder,
    IssuanceDatabase,
    IssuanceRepository,
    IssuanceSettings,
    IssueFeeUpdated,
    FeeRecipientUpdated,
    PersistenceConfig,
    ether,
)


BASKET = "0x" + "b0" * 20


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def database():
    return IssuanceDatabase(PersistenceConfig(database_url="sqlite+aiosqlite:///:memory:"))


@asynccontextmanager
async def open_repository(database):
    await database.create_tables()
    try:
        async with database.session_scope() as session:
            yield IssuanceRepository(session)
    finally:
        await database.dispose()


def _issued(quantity, manager_fee=0, protocol_fee=0):
    return BasketTokenIssued(
        basket_token=BASKET,
        issuer=ISSUER,
        to=RECIPIENT,
        hook_contract=ZERO_ADDRESS,
        quantity=quantity,
        manager_fee=manager_fee,
        protocol_fee=protocol_fee,
    )


def _redeemed(quantity, manager_fee=0):
    return BasketTokenRedeemed(
        basket_token=BASKET,
        redeemer=ISSUER,
        to=RECIPIENT,
        quantity=quantity,
        manager_fee=manager_fee,
        protocol_fee=0,
    )


# ============================================================
# EVENT TESTS
# ============================================================

class TestEventPersistence:
    """Tests for event rows."""

    @pytest.mark.asyncio
    async def test_issuance_event_round_trip(self, database):
        async with open_repository(database) as repo:
            await repo.save_event(_issued(ether(1), manager_fee=ether("0.005")))
            rows = await repo.get_events_for_basket(BASKET)

        assert len(rows) == 1
        row = rows[0].to_dict()
        assert row["event_type"] == "ISSUED"
        assert row["account"] == ISSUER
        assert row["to"] == RECIPIENT
        assert row["quantity"] == ether(1)
        assert row["manager_fee"] == ether("0.005")

    @pytest.mark.asyncio
    async def test_amounts_beyond_64_bits(self, database):
        quantity = 2 ** 255 + 12345
        async with open_repository(database) as repo:
            await repo.save_event(_issued(quantity))
            rows = await repo.get_events_for_basket(BASKET)
        assert rows[0].to_dict()["quantity"] == quantity

    @pytest.mark.asyncio
    async def test_filter_by_event_type(self, database):
        async with open_repository(database) as repo:
            await repo.save_event(_issued(ether(2)))
            await repo.save_event(_redeemed(ether(1)))
            redemptions = await repo.get_events_for_basket(BASKET, event_type="REDEEMED")

        assert [row.event_type for row in redemptions] == ["REDEEMED"]
        assert redemptions[0].account == ISSUER

    @pytest.mark.asyncio
    async def test_fee_updates(self, database):
        async with open_repository(database) as repo:
            await repo.save_event(IssueFeeUpdated(basket_token=BASKET, new_issue_fee=ether("0.01")))
            await repo.save_event(FeeRecipientUpdated(basket_token=BASKET, new_fee_recipient=FEE_RECIPIENT))
            rows = await repo.get_fee_updates_for_basket(BASKET)

        assert [row.event_type for row in rows] == ["ISSUE_FEE_UPDATED", "FEE_RECIPIENT_UPDATED"]
        assert rows[0].to_dict()["new_fee"] == ether("0.01")
        assert rows[0].new_fee_recipient is None
        assert rows[1].new_fee is None
        assert rows[1].new_fee_recipient == FEE_RECIPIENT

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, database):
        async with open_repository(database) as repo:
            with pytest.raises(TypeError):
                await repo.save_event(object())


# ============================================================
# RECORDER TESTS
# ============================================================

class TestEventRecorder:
    """Tests for EventRecorder."""

    @pytest.mark.asyncio
    async def test_records_committed_engine_events(self, database, initialized_basket, engine, funded_issuer):
        recorder = EventRecorder.attach(engine)

        engine.issue(initialized_basket.address, ether(2), ISSUER, caller=ISSUER)
        engine.update_redeem_fee(initialized_basket.address, ether("0.01"), caller=MANAGER)
        engine.redeem(initialized_basket.address, ether(1), ISSUER, caller=ISSUER)
        assert len(recorder.pending) == 3

        async with open_repository(database) as repo:
            written = await recorder.flush(repo)
            events = await repo.get_events_for_basket(initialized_basket.address)
            fee_updates = await repo.get_fee_updates_for_basket(initialized_basket.address)

        assert written == 3
        assert recorder.pending == []
        assert [row.event_type for row in events] == ["ISSUED", "REDEEMED"]
        assert events[1].to_dict()["manager_fee"] == ether("0.01")
        assert fee_updates[0].to_dict()["new_fee"] == ether("0.01")

    def test_attach_skipped_when_persistence_disabled(self):
        engine = MagicMock()
        engine.config.persistence.persist_events = False

        EventRecorder.attach(engine)

        engine.add_listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_save_stays_buffered(self):
        recorder = EventRecorder()
        recorder(_issued(1))
        recorder(_issued(2))

        repo = MagicMock()
        repo.save_event = AsyncMock(side_effect=[None, RuntimeError("database down")])

        with pytest.raises(RuntimeError):
            await recorder.flush(repo)

        assert [event.quantity for event in recorder.pending] == [2]


# ============================================================
# SETTINGS TESTS
# ============================================================

class TestSettingsPersistence:
    """Tests for settings snapshots."""

    @pytest.mark.asyncio
    async def test_save_then_update(self, database):
        hook = MagicMock()
        hook.address = "0x" + "ef" * 20

        async with open_repository(database) as repo:
            await repo.save_settings(BASKET, IssuanceSettings(
                max_manager_fee=ether("0.02"),
                manager_issue_fee=ether("0.01"),
                fee_recipient=FEE_RECIPIENT,
            ))
            await repo.save_settings(BASKET, IssuanceSettings(
                max_manager_fee=ether("0.02"),
                manager_issue_fee=ether("0.015"),
                fee_recipient=RECIPIENT,
                manager_issuance_hook=hook,
            ))
            stored = await repo.get_settings(BASKET)

        assert stored.to_dict() == {
            "basket_token": BASKET,
            "max_manager_fee": ether("0.02"),
            "manager_issue_fee": ether("0.015"),
            "manager_redeem_fee": 0,
            "fee_recipient": RECIPIENT,
            "manager_issuance_hook": hook.address,
        }

    @pytest.mark.asyncio
    async def test_missing_settings(self, database):
        async with open_repository(database) as repo:
            assert await repo.get_settings(BASKET) is None


# ============================================================
# RECONCILIATION LOG TESTS
# ============================================================

class TestReconciliationLogs:
    """Tests for reconciliation run logs."""

    @pytest.mark.asyncio
    async def test_save_run_with_mismatch(self, database, initialized_basket, engine, weth, funded_issuer):
        engine.issue(initialized_basket.address, ether(1), ISSUER, caller=ISSUER)
        weth.mint(initialized_basket.address, 7)
        result = engine.reconciler.reconcile(initialized_basket)

        async with open_repository(database) as repo:
            await repo.save_reconciliation_result(result)
            logs = await repo.get_recent_reconciliation_logs()

        assert len(logs) == 1
        log = logs[0]
        assert log.to_dict()["total_supply"] == ether(1)
        assert log.is_consistent
        assert log.mismatches_found == 1
        mismatches = json.loads(log.mismatches_json)
        assert mismatches[0]["type"] == "EXCESS_BALANCE"
        assert mismatches[0]["actual"] == str(ether(1) + 7)


# ============================================================
# STATISTICS TESTS
# ============================================================

class TestIssuanceStats:
    """Tests for get_issuance_stats."""

    @pytest.mark.asyncio
    async def test_totals(self, database):
        async with open_repository(database) as repo:
            await repo.save_event(_issued(ether(3), manager_fee=10, protocol_fee=2))
            await repo.save_event(_issued(ether(1), manager_fee=5))
            await repo.save_event(_redeemed(ether(2), manager_fee=1))
            stats = await repo.get_issuance_stats(BASKET)

        assert stats == {
            "total_events": 3,
            "by_type": {"ISSUED": 2, "REDEEMED": 1},
            "total_issued": ether(4),
            "total_redeemed": ether(2),
            "total_manager_fees": 16,
            "total_protocol_fees": 2,
        }

    @pytest.mark.asyncio
    async def test_since_filter(self, database):
        async with open_repository(database) as repo:
            await repo.save_event(_issued(ether(1)))
            stats = await repo.get_issuance_stats(
                BASKET, since=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        assert stats["total_events"] == 0

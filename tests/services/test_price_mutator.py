"""
Service Tests for Price Mutator
===============================

Runs the mutator against an in-memory SQLite database with the real
schema (partial unique indexes and check constraints included).
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError

from price_engine.db.models import DefaultPrice, PriceAuditLog, PrivatePrice
from price_engine.schemas.domain import (
    AuditContext,
    DiscountPrice,
    FixedPrice,
    PriceType,
    PrivatePriceChanges,
)
from price_engine.services.audit_trail import AuditTrail
from price_engine.services.price_mutator import PriceMutator
from price_engine.utils.errors import (
    DatabaseError,
    ForbiddenError,
    MutationTimeoutError,
    NotFoundError,
    ValidationError,
)


async def fetch_all(session_factory, model, *criteria):
    async with session_factory() as session:
        result = await session.execute(select(model).where(*criteria))
        return list(result.scalars().all())


async def audit_rows(session_factory, product_id):
    rows = await fetch_all(session_factory, PriceAuditLog, PriceAuditLog.product_id == product_id)
    return sorted(rows, key=lambda row: row.changed_at)


async def set_default(mutator, catalog, amount="100.00", **kwargs):
    return await mutator.set_default_price(
        catalog.product_id,
        catalog.supplier_id,
        Decimal(amount),
        changed_by=catalog.user_id,
        **kwargs,
    )


async def create_private(mutator, catalog, mode, company_id=None, **kwargs):
    return await mutator.create_private_price(
        catalog.product_id,
        catalog.supplier_id,
        company_id or catalog.company_a_id,
        mode,
        changed_by=catalog.user_id,
        **kwargs,
    )


class TestSetDefaultPrice:
    """Test default price versioning."""

    @pytest.mark.asyncio
    async def test_first_price_creates_active_row_and_audit(self, mutator, catalog, session_factory):
        row = await set_default(
            mutator, catalog, context=AuditContext(ip_address="10.0.0.7", user_agent="pytest")
        )

        assert row.is_active is True
        assert row.price == Decimal("100.00")
        assert row.currency == "USD"

        audit = await audit_rows(session_factory, catalog.product_id)
        assert len(audit) == 1
        assert audit[0].price_type == "default"
        assert audit[0].old_price is None
        assert audit[0].new_price == Decimal("100.00")
        assert audit[0].changed_by == catalog.user_id
        assert audit[0].change_reason == "Default price created"
        assert audit[0].ip_address == "10.0.0.7"
        assert audit[0].user_agent == "pytest"

    @pytest.mark.asyncio
    async def test_repeated_sets_keep_single_active_row(self, mutator, catalog, session_factory):
        for amount in ("100.00", "120.00", "120.00", "95.50"):
            await set_default(mutator, catalog, amount)

        rows = await fetch_all(session_factory, DefaultPrice, DefaultPrice.product_id == catalog.product_id)
        active = [row for row in rows if row.is_active]

        assert len(rows) == 4
        assert len(active) == 1
        assert active[0].price == Decimal("95.50")

    @pytest.mark.asyncio
    async def test_audit_records_previous_price(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        await set_default(mutator, catalog, "120.00")

        audit = await audit_rows(session_factory, catalog.product_id)

        assert [(a.old_price, a.new_price) for a in audit] == [
            (None, Decimal("100.00")),
            (Decimal("100.00"), Decimal("120.00")),
        ]
        assert audit[1].change_reason == "Default price updated"

    @pytest.mark.asyncio
    async def test_currency_is_normalized(self, mutator, catalog):
        row = await set_default(mutator, catalog, currency="eur")

        assert row.currency == "EUR"

    @pytest.mark.asyncio
    async def test_negative_price_rejected_without_state_change(self, mutator, catalog, session_factory):
        with pytest.raises(ValidationError):
            await set_default(mutator, catalog, "-0.01")

        assert await fetch_all(session_factory, DefaultPrice) == []
        assert await fetch_all(session_factory, PriceAuditLog) == []

    @pytest.mark.asyncio
    async def test_malformed_currency_rejected(self, mutator, catalog):
        with pytest.raises(ValidationError):
            await set_default(mutator, catalog, currency="DOLLARS")

    @pytest.mark.asyncio
    async def test_inverted_window_rejected(self, mutator, catalog):
        from datetime import datetime, timezone

        with pytest.raises(ValidationError):
            await set_default(
                mutator,
                catalog,
                effective_from=datetime(2026, 2, 1, tzinfo=timezone.utc),
                effective_until=datetime(2026, 1, 1, tzinfo=timezone.utc),
            )

    @pytest.mark.asyncio
    async def test_other_suppliers_product_is_not_found(self, mutator, catalog, session_factory):
        with pytest.raises(NotFoundError):
            await mutator.set_default_price(
                catalog.other_product_id,
                catalog.supplier_id,
                Decimal("10.00"),
                changed_by=catalog.user_id,
            )

        assert await fetch_all(session_factory, DefaultPrice) == []

    @pytest.mark.asyncio
    async def test_broadcast_to_companies_after_commit(self, mutator, catalog, notifier):
        await set_default(mutator, catalog, "100.00")

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.price_type == PriceType.DEFAULT
        assert event.product_id == catalog.product_id
        assert event.product_name == "Copper cable 3x2.5"
        assert event.supplier_id == catalog.supplier_id
        assert event.new_price == Decimal("100.00")
        assert event.company_id is None


class TestCreatePrivatePrice:
    """Test private price creation."""

    @pytest.mark.asyncio
    async def test_discount_audit_records_effective_amount(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")

        row = await create_private(mutator, catalog, DiscountPrice(Decimal("10")))

        assert row.discount_percentage == Decimal("10")
        assert row.price is None
        assert row.currency is None

        audit = [a for a in await audit_rows(session_factory, catalog.product_id) if a.price_type == "private"]
        assert len(audit) == 1
        assert audit[0].company_id == catalog.company_a_id
        assert audit[0].old_price is None
        assert audit[0].new_price == Decimal("90.00")
        assert audit[0].new_discount_percentage == Decimal("10")
        assert audit[0].change_reason == "Private price created for Acme Builders (10% discount)"

    @pytest.mark.asyncio
    async def test_fixed_price_gets_default_currency_and_is_broadcast(self, mutator, catalog, notifier):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        assert row.price == Decimal("80.00")
        assert row.discount_percentage is None
        assert row.currency == "USD"

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.price_type == PriceType.PRIVATE
        assert event.company_id == catalog.company_a_id
        assert event.new_price == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_discount_is_not_broadcast(self, mutator, catalog, notifier):
        await set_default(mutator, catalog)
        notifier.events.clear()

        await create_private(mutator, catalog, DiscountPrice(Decimal("5")))

        assert notifier.events == []

    @pytest.mark.asyncio
    async def test_new_private_price_supersedes_previous(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        await create_private(mutator, catalog, DiscountPrice(Decimal("25")))

        rows = await fetch_all(
            session_factory,
            PrivatePrice,
            PrivatePrice.product_id == catalog.product_id,
            PrivatePrice.company_id == catalog.company_a_id,
        )
        active = [row for row in rows if row.is_active]

        assert len(rows) == 2
        assert len(active) == 1
        assert active[0].discount_percentage == Decimal("25")

        audit = [a for a in await audit_rows(session_factory, catalog.product_id) if a.price_type == "private"]
        assert audit[-1].old_price == Decimal("80.00")
        assert audit[-1].new_price == Decimal("75.00")
        assert audit[-1].old_discount_percentage is None
        assert audit[-1].new_discount_percentage == Decimal("25")
        assert audit[-1].change_reason.startswith("Private price updated for Acme Builders")

    @pytest.mark.asyncio
    async def test_scopes_are_independent_per_company(self, mutator, catalog, session_factory):
        await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        await create_private(mutator, catalog, FixedPrice(Decimal("85.00")), company_id=catalog.company_b_id)

        active = await fetch_all(session_factory, PrivatePrice, PrivatePrice.is_active.is_(True))

        assert {row.company_id for row in active} == {catalog.company_a_id, catalog.company_b_id}

    @pytest.mark.asyncio
    async def test_discount_without_default_records_no_amount(self, mutator, catalog, session_factory):
        await create_private(mutator, catalog, DiscountPrice(Decimal("10")))

        audit = await audit_rows(session_factory, catalog.product_id)

        assert len(audit) == 1
        assert audit[0].new_price is None
        assert audit[0].new_discount_percentage == Decimal("10")

    @pytest.mark.asyncio
    async def test_inactive_company_is_not_found(self, mutator, catalog, session_factory):
        with pytest.raises(NotFoundError, match="Company not found"):
            await create_private(
                mutator, catalog, FixedPrice(Decimal("1.00")), company_id=catalog.inactive_company_id
            )

        assert await fetch_all(session_factory, PrivatePrice) == []

    @pytest.mark.asyncio
    async def test_unknown_company_is_not_found(self, mutator, catalog):
        with pytest.raises(NotFoundError):
            await create_private(mutator, catalog, FixedPrice(Decimal("1.00")), company_id=uuid4())

    @pytest.mark.asyncio
    async def test_supplier_cannot_be_a_target_company(self, mutator, catalog):
        with pytest.raises(NotFoundError):
            await create_private(
                mutator, catalog, FixedPrice(Decimal("1.00")), company_id=catalog.other_supplier_id
            )

    @pytest.mark.asyncio
    async def test_other_suppliers_product_is_not_found(self, mutator, catalog, session_factory):
        with pytest.raises(NotFoundError, match="Product not found"):
            await mutator.create_private_price(
                catalog.other_product_id,
                catalog.supplier_id,
                catalog.company_a_id,
                FixedPrice(Decimal("1.00")),
                changed_by=catalog.user_id,
            )

        assert await fetch_all(session_factory, PrivatePrice) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("percentage", ["-1", "100.01"])
    async def test_discount_out_of_range_rejected(self, mutator, catalog, percentage):
        with pytest.raises(ValidationError):
            await create_private(mutator, catalog, DiscountPrice(Decimal(percentage)))

    @pytest.mark.asyncio
    async def test_missing_mode_rejected(self, mutator, catalog):
        with pytest.raises(ValidationError):
            await create_private(mutator, catalog, None)


class TestUpdatePrivatePrice:
    """Test partial updates of private prices."""

    @pytest.mark.asyncio
    async def test_switching_mode_clears_the_other(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        updated = await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(mode=DiscountPrice(Decimal("30"))),
            changed_by=catalog.user_id,
        )

        assert updated.id == row.id
        assert updated.price is None
        assert updated.discount_percentage == Decimal("30")

        audit = await audit_rows(session_factory, catalog.product_id)
        assert audit[-1].old_price == Decimal("80.00")
        assert audit[-1].new_price == Decimal("70.00")
        assert audit[-1].new_discount_percentage == Decimal("30")

    @pytest.mark.asyncio
    async def test_switching_discount_to_fixed_sets_currency(self, mutator, catalog):
        await set_default(mutator, catalog, "100.00")
        row = await create_private(mutator, catalog, DiscountPrice(Decimal("10")))

        updated = await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(mode=FixedPrice(Decimal("88.00"))),
            changed_by=catalog.user_id,
        )

        assert updated.price == Decimal("88.00")
        assert updated.discount_percentage is None
        assert updated.currency == "USD"

    @pytest.mark.asyncio
    async def test_non_pricing_update_is_not_audited(self, mutator, catalog, session_factory, notifier):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        notifier.events.clear()

        updated = await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(notes="Framework agreement 2026"),
            changed_by=catalog.user_id,
        )

        assert updated.notes == "Framework agreement 2026"
        assert len(await audit_rows(session_factory, catalog.product_id)) == 1
        assert notifier.events == []

    @pytest.mark.asyncio
    async def test_fixed_price_change_is_broadcast(self, mutator, catalog, notifier):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        notifier.events.clear()

        await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(mode=FixedPrice(Decimal("78.00"))),
            changed_by=catalog.user_id,
        )

        assert [e.new_price for e in notifier.events] == [Decimal("78.00")]

    @pytest.mark.asyncio
    async def test_other_supplier_is_forbidden(self, mutator, catalog, session_factory):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        with pytest.raises(ForbiddenError, match="Not authorized to update this price"):
            await mutator.update_private_price(
                row.id,
                catalog.other_supplier_id,
                PrivatePriceChanges(mode=FixedPrice(Decimal("1.00"))),
                changed_by=uuid4(),
            )

        stored = await fetch_all(session_factory, PrivatePrice, PrivatePrice.id == row.id)
        assert stored[0].price == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_unknown_row_is_not_found(self, mutator, catalog):
        with pytest.raises(NotFoundError):
            await mutator.update_private_price(
                uuid4(), catalog.supplier_id, PrivatePriceChanges(), changed_by=catalog.user_id
            )

    @pytest.mark.asyncio
    async def test_reactivation_deactivates_current_row(self, mutator, catalog, session_factory):
        first = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        second = await create_private(mutator, catalog, FixedPrice(Decimal("70.00")))

        await mutator.update_private_price(
            first.id,
            catalog.supplier_id,
            PrivatePriceChanges(is_active=True),
            changed_by=catalog.user_id,
        )

        active = await fetch_all(session_factory, PrivatePrice, PrivatePrice.is_active.is_(True))
        assert [row.id for row in active] == [first.id]
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_reactivation_audits_superseded_price(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        first = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        await create_private(mutator, catalog, FixedPrice(Decimal("70.00")))

        await mutator.update_private_price(
            first.id,
            catalog.supplier_id,
            PrivatePriceChanges(is_active=True),
            changed_by=catalog.user_id,
        )

        audit = await audit_rows(session_factory, catalog.product_id)
        assert len(audit) == 4
        assert audit[-1].change_reason.startswith("Private price reactivated for Acme Builders")
        assert audit[-1].old_price == Decimal("70.00")
        assert audit[-1].new_price == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_reactivation_into_empty_scope_has_no_old_price(self, mutator, catalog, session_factory):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))
        await mutator.delete_private_price(row.id, catalog.supplier_id, changed_by=catalog.user_id)

        await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(is_active=True),
            changed_by=catalog.user_id,
        )

        audit = await audit_rows(session_factory, catalog.product_id)
        assert audit[-1].old_price is None
        assert audit[-1].new_price == Decimal("80.00")


class TestDeletePrivatePrice:
    """Test soft deletion of private prices."""

    @pytest.mark.asyncio
    async def test_delete_deactivates_and_audits(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        deleted = await mutator.delete_private_price(
            row.id, catalog.supplier_id, changed_by=catalog.user_id
        )

        assert deleted.is_active is False
        stored = await fetch_all(session_factory, PrivatePrice, PrivatePrice.id == row.id)
        assert stored[0].is_active is False

        audit = await audit_rows(session_factory, catalog.product_id)
        assert audit[-1].change_reason == "Private price deactivated for Acme Builders"
        assert audit[-1].old_price == Decimal("80.00")
        assert audit[-1].new_price == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_deleting_twice_writes_one_audit_row(self, mutator, catalog, session_factory):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        await mutator.delete_private_price(row.id, catalog.supplier_id, changed_by=catalog.user_id)
        await mutator.delete_private_price(row.id, catalog.supplier_id, changed_by=catalog.user_id)

        audit = await audit_rows(session_factory, catalog.product_id)
        assert len(audit) == 2

    @pytest.mark.asyncio
    async def test_other_supplier_is_forbidden(self, mutator, catalog):
        row = await create_private(mutator, catalog, FixedPrice(Decimal("80.00")))

        with pytest.raises(ForbiddenError):
            await mutator.delete_private_price(
                row.id, catalog.other_supplier_id, changed_by=uuid4()
            )


class TestTransactionBoundary:
    """Notifications follow commits; failures and timeouts leave no partial state."""

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_mutation(self, mutator, notifier, catalog, session_factory):
        notifier.fail = True

        row = await set_default(mutator, catalog, "100.00")

        stored = await fetch_all(session_factory, DefaultPrice, DefaultPrice.id == row.id)
        assert stored[0].is_active is True

    @pytest.mark.asyncio
    async def test_event_published_only_after_commit(self, session_factory, catalog, settings):
        seen = []

        class CheckingNotifier:
            async def publish(self, event):
                rows = await fetch_all(
                    session_factory, DefaultPrice, DefaultPrice.product_id == event.product_id
                )
                seen.append([row.price for row in rows if row.is_active])

        mutator = PriceMutator(session_factory, CheckingNotifier(), settings)
        await set_default(mutator, catalog, "100.00")

        assert seen == [[Decimal("100.00")]]

    @pytest.mark.asyncio
    async def test_timeout_rolls_back_everything(self, mutator, catalog, settings, session_factory, monkeypatch):
        settings.mutation_timeout_seconds = 0.05
        original = AuditTrail.record_default_change

        async def slow_record(self, *args, **kwargs):
            entry = await original(self, *args, **kwargs)
            await asyncio.sleep(1)
            return entry

        monkeypatch.setattr(AuditTrail, "record_default_change", slow_record)

        with pytest.raises(MutationTimeoutError):
            await set_default(mutator, catalog, "100.00")

        assert await fetch_all(session_factory, DefaultPrice) == []
        assert await fetch_all(session_factory, PriceAuditLog) == []

    @pytest.mark.asyncio
    async def test_every_committed_mutation_has_one_audit_row(self, mutator, catalog, session_factory):
        await set_default(mutator, catalog, "100.00")
        await set_default(mutator, catalog, "110.00")
        row = await create_private(mutator, catalog, DiscountPrice(Decimal("10")))
        await mutator.update_private_price(
            row.id,
            catalog.supplier_id,
            PrivatePriceChanges(mode=DiscountPrice(Decimal("20"))),
            changed_by=catalog.user_id,
        )
        await mutator.delete_private_price(row.id, catalog.supplier_id, changed_by=catalog.user_id)

        audit = await audit_rows(session_factory, catalog.product_id)

        assert [a.new_price for a in audit] == [
            Decimal("100.00"),
            Decimal("110.00"),
            Decimal("99.00"),
            Decimal("88.00"),
            Decimal("110.00"),
        ]


class QueryCanceled(Exception):
    sqlstate = "57014"


class TestStatementTimeout:
    """PostgreSQL statement_timeout cancellations surface as mutation timeouts."""

    @pytest.mark.asyncio
    async def test_cancelled_statement_is_a_timeout(self, mutator, catalog, session_factory, monkeypatch):
        async def cancelled(self, *args, **kwargs):
            raise DBAPIError(
                "INSERT INTO price_audit_logs ...",
                {},
                QueryCanceled("canceling statement due to statement timeout"),
            )

        monkeypatch.setattr(AuditTrail, "record_default_change", cancelled)

        with pytest.raises(MutationTimeoutError):
            await set_default(mutator, catalog, "100.00")

        assert await fetch_all(session_factory, DefaultPrice) == []

    @pytest.mark.asyncio
    async def test_wrapped_cancellation_is_a_timeout(self, mutator, catalog, monkeypatch):
        async def cancelled(self, *args, **kwargs):
            cause = DBAPIError("SELECT ...", {}, QueryCanceled("canceling statement"))
            raise DatabaseError("Audit write failed") from cause

        monkeypatch.setattr(AuditTrail, "record_default_change", cancelled)

        with pytest.raises(MutationTimeoutError):
            await set_default(mutator, catalog, "100.00")

    @pytest.mark.asyncio
    async def test_other_database_errors_propagate(self, mutator, catalog, monkeypatch):
        async def broken(self, *args, **kwargs):
            cause = DBAPIError("SELECT ...", {}, Exception("connection reset"))
            raise DatabaseError("Audit write failed") from cause

        monkeypatch.setattr(AuditTrail, "record_default_change", broken)

        with pytest.raises(DatabaseError):
            await set_default(mutator, catalog, "100.00")

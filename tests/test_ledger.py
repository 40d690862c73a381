import uuid
from datetime import date
from decimal import Decimal

import pytest

from fintrack.core.errors import NotFound, ValidationError
from fintrack.services import ledger
from fintrack.services.live import DELETE, INSERT


def valid_row(**overrides):
    fields = dict(txn_date=date(2024, 3, 1), description="Water bill", amount="42.50", txn_type="expense")
    fields.update(overrides)
    return ledger.validate_transaction(**fields)


class TestValidation:
    def test_valid_row(self):
        row = valid_row()
        assert row.amount == Decimal("42.50")
        assert row.type == "expense"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"txn_date": None}, "Date is required"),
            ({"description": "ab"}, "Description must be at least 3 characters"),
            ({"description": "x" * 101}, "Description is too long"),
            ({"amount": "0"}, "Amount must be greater than zero"),
            ({"amount": "-5"}, "Amount must be greater than zero"),
            ({"amount": "0.001"}, "Amount must be greater than zero"),
            ({"amount": "abc"}, "Amount must be a number"),
            ({"amount": "NaN"}, "Amount must be greater than zero"),
            ({"amount": "99999999999"}, "Amount is too large"),
            ({"txn_type": "transfer"}, "Type must be income or expense"),
        ],
    )
    def test_rejects(self, overrides, message):
        with pytest.raises(ValidationError) as exc:
            valid_row(**overrides)
        assert exc.value.message == message

    def test_property_name_bounds(self, session, owner):
        with pytest.raises(ValidationError):
            ledger.create_property(session, owner.id, "A")
        with pytest.raises(ValidationError):
            ledger.create_property(session, owner.id, "x" * 51)


class TestOwnership:
    def test_properties_are_isolated(self, session, owner, stranger):
        ledger.create_property(session, owner.id, "Harbour View")
        ledger.create_property(session, stranger.id, "Elm Street")
        assert [p.name for p in ledger.list_properties(session, owner.id)] == ["Harbour View"]

    def test_cannot_add_to_foreign_property(self, session, prop, stranger):
        with pytest.raises(NotFound):
            ledger.create_transactions(session, stranger.id, prop.id, [valid_row()])

    def test_cannot_delete_foreign_transaction(self, session, prop, owner, stranger):
        (txn,) = ledger.create_transactions(session, owner.id, prop.id, [valid_row()])
        with pytest.raises(NotFound):
            ledger.delete_transaction(session, txn.id, stranger.id)

    def test_invalid_property_id(self, session, owner):
        with pytest.raises(ValidationError) as exc:
            ledger.create_transactions(session, owner.id, "123", [valid_row()])
        assert exc.value.message == "Please select a valid property"

    def test_missing_transaction(self, session, owner):
        with pytest.raises(NotFound):
            ledger.delete_transaction(session, uuid.uuid4(), owner.id)


class TestMutations:
    def test_bulk_insert_publishes_each_row(self, session, prop, owner, feed):
        published = []
        feed.publish = published.append
        rows = [valid_row(description=f"Repair {i}") for i in range(3)]

        created = ledger.create_transactions(session, owner.id, prop.id, rows, feed)

        assert len(created) == 3
        assert [e.type for e in published] == [INSERT] * 3
        assert {e.new["id"] for e in published} == {str(t.id) for t in created}
        assert len(ledger.list_transactions(session, prop.id)) == 3

    def test_bulk_limits(self, session, prop, owner):
        with pytest.raises(ValidationError):
            ledger.create_transactions(session, owner.id, prop.id, [])
        with pytest.raises(ValidationError):
            ledger.create_transactions(session, owner.id, prop.id, [valid_row() for _ in range(51)])

    def test_delete_publishes_old_row(self, session, prop, owner, feed):
        (txn,) = ledger.create_transactions(session, owner.id, prop.id, [valid_row()])
        published = []
        feed.publish = published.append

        ledger.delete_transaction(session, txn.id, owner.id, feed)

        assert [e.type for e in published] == [DELETE]
        assert published[0].old["id"] == str(txn.id)
        assert ledger.list_transactions(session, prop.id) == []

    def test_transactions_ordered_by_date(self, session, prop, owner):
        ledger.create_transactions(
            session,
            owner.id,
            prop.id,
            [valid_row(txn_date=date(2024, 3, 9)), valid_row(txn_date=date(2024, 3, 2))],
        )
        assert [t.date for t in ledger.list_transactions(session, prop.id)] == [date(2024, 3, 2), date(2024, 3, 9)]

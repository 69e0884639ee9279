"""
ORM immutability listeners.

Frozen ledger fields must be refused at flush time, whatever code path
tries to change them.
"""

from decimal import Decimal

import pytest

from fuel_kernel.domain.lifecycle import FuelType
from fuel_kernel.exceptions import ImmutabilityViolationError
from fuel_kernel.models.invoice import Invoice, InvoiceMember
from fuel_kernel.models.transaction import FuelTransaction


@pytest.fixture
def make_txn(services, service_world):
    def _make(validate=True):
        info = services.issuer.request_fuel(
            service_world.organization_id,
            service_world.station_id,
            service_world.vehicle_id,
            "J. Driver",
            FuelType.DIESEL,
            "20",
        )
        if validate:
            services.validator.validate_fill(info.id, "20", "5.000", "1000")
        return services.session.get(FuelTransaction, info.id)

    return _make


@pytest.fixture
def invoice(services, service_world, make_txn):
    make_txn()
    make_txn()
    info = services.aggregator.generate_invoice(
        service_world.station_id, service_world.organization_id, False, "NF-1", None
    )
    return services.session.get(Invoice, info.id)


class TestTransactionImmutability:
    def test_request_fields_frozen(self, services, make_txn):
        txn = make_txn(validate=False)
        txn.voucher_code = "FRT-20240101-ZZZZZ"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_fill_fields_frozen_after_validation(self, services, make_txn):
        txn = make_txn()
        txn.filled_liters = Decimal("25.000")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            services.session.flush()
        assert exc_info.value.entity_type == "FuelTransaction"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_fee_snapshot_frozen_while_invoiced(self, services, invoice):
        txn = services.session.get(FuelTransaction, invoice.transaction_ids[0])
        txn.fee_percentage_applied = Decimal("10")
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_paid_transaction_sealed(self, services, invoice):
        services.workflow.attest(invoice.id)
        services.workflow.settle(invoice.id)
        txn = services.session.get(FuelTransaction, invoice.transaction_ids[0])
        txn.cancel_reason = "rewrite history"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_validated_transaction_cannot_be_deleted(self, services, make_txn):
        txn = make_txn()
        services.session.delete(txn)
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_requested_transaction_can_be_deleted(self, services, make_txn):
        txn = make_txn(validate=False)
        txn_id = txn.id
        services.session.delete(txn)
        services.session.flush()
        assert services.session.get(FuelTransaction, txn_id) is None

    def test_rejection_may_clear_snapshot(self, services, invoice):
        services.workflow.reject(invoice.id, "wrong number")
        txn = services.session.get(FuelTransaction, invoice.transaction_ids[0])
        assert txn.fee_amount is None


class TestInvoiceImmutability:
    def test_money_frozen(self, services, invoice):
        invoice.total_value = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_document_frozen(self, services, invoice):
        invoice.document_number = "NF-2"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_status_may_move(self, services, invoice):
        services.workflow.attest(invoice.id)
        assert invoice.status == "pending_admin"

    def test_terminal_invoice_sealed(self, services, invoice):
        services.workflow.reject(invoice.id, "wrong number")
        invoice.rejection_reason = "edited later"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_invoice_cannot_be_deleted(self, services, invoice):
        services.session.delete(invoice)
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_membership_cannot_be_deleted(self, services, invoice):
        member = services.session.query(InvoiceMember).filter_by(invoice_id=invoice.id).first()
        services.session.delete(member)
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

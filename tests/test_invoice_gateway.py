import asyncio
from unittest.mock import AsyncMock

import pytest

from jewelbill.schemas.customer import CustomerSnapshot
from jewelbill.services.exceptions import (
    CreateInvoiceFailedError,
    DownstreamServiceError,
    DuplicateInvoiceNumberError,
)
from jewelbill.services.invoice_gateway import InvoicePersistenceGateway
from jewelbill.services.repositories import InvoicePersistenceError


SHOP_ID = "7d3f6a52-2f8e-4c1b-9a0e-5b6c1d2e3f40"
ITEMS = [
    {
        "description": "Silver anklet",
        "purity": "925",
        "grossWeight": 20,
        "netWeight": 19.5,
        "rate": 90,
        "making": 250,
    }
]


def _remote_client() -> AsyncMock:
    client = AsyncMock()
    client.use_mock_data = False
    return client


def _create(gateway, invoice_number=None):
    return asyncio.run(
        gateway.create(
            shop_id=SHOP_ID,
            customer_id="cust-1",
            snapshot=CustomerSnapshot(name="Ravi", phone="9000000009"),
            items=ITEMS,
            discount=0,
            notes=None,
            user_id="user-1",
            status="due",
            invoice_number=invoice_number,
        )
    )


def test_procedure_result_is_returned() -> None:
    client = _remote_client()
    client.rpc.return_value = [
        {"invoice_id": "9b1c", "invoice_number": "INV-00042", "grand_total": "2065.73"}
    ]
    gateway = InvoicePersistenceGateway(client)

    invoice = _create(gateway, invoice_number="INV-00042")

    assert invoice.invoice_id == "9b1c"
    assert invoice.invoice_number == "INV-00042"
    assert invoice.grand_total == pytest.approx(2065.73)

    function, params = client.rpc.await_args.args
    assert function == "create_invoice_with_items"
    assert params["p_shop_id"] == SHOP_ID
    assert params["p_customer_id"] == "cust-1"
    assert params["p_items"] == ITEMS
    assert params["p_invoice_number"] == "INV-00042"
    assert params["p_customer_snapshot"]["name"] == "Ravi"


def test_unique_violation_maps_to_duplicate_number() -> None:
    client = _remote_client()
    client.rpc.side_effect = DownstreamServiceError(
        'duplicate key value violates unique constraint "unique_invoice_number_per_shop"',
        status_code=409,
        error_code="23505",
    )
    gateway = InvoicePersistenceGateway(client)

    with pytest.raises(DuplicateInvoiceNumberError) as excinfo:
        _create(gateway, invoice_number="INV-00001")

    assert excinfo.value.status_code == 409
    assert "already exists" in str(excinfo.value)


def test_constraint_name_without_code_is_still_duplicate() -> None:
    repository = AsyncMock()
    repository.create_with_items.side_effect = InvoicePersistenceError(
        "unique_invoice_number_per_shop violated"
    )
    gateway = InvoicePersistenceGateway(_remote_client(), repository=repository)

    with pytest.raises(DuplicateInvoiceNumberError):
        _create(gateway)


def test_other_procedure_errors_are_generic_failures() -> None:
    repository = AsyncMock()
    repository.create_with_items.side_effect = InvoicePersistenceError(
        "null value in column \"rate\"", code="23502"
    )
    gateway = InvoicePersistenceGateway(_remote_client(), repository=repository)

    with pytest.raises(CreateInvoiceFailedError) as excinfo:
        _create(gateway)

    assert excinfo.value.status_code == 500
    assert str(excinfo.value).startswith("Failed to create invoice:")


def test_malformed_procedure_result_is_a_failure() -> None:
    client = _remote_client()
    client.rpc.return_value = []
    gateway = InvoicePersistenceGateway(client)

    with pytest.raises(CreateInvoiceFailedError):
        _create(gateway)


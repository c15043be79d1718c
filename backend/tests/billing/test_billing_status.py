from decimal import Decimal

import pytest

from patient_ledger.models.billing import PaymentStatus
from patient_ledger.services.billing_status import derive_status
from patient_ledger.services.errors import InvalidInput


@pytest.mark.parametrize(
    ("total", "paid", "expected"),
    [
        ("2000", "0", PaymentStatus.pending),
        ("0", "0", PaymentStatus.completed),
        ("-500", "0", PaymentStatus.completed),
        ("2000", "2000", PaymentStatus.completed),
        ("2000", "1999.995", PaymentStatus.completed),
        ("2000", "1200", PaymentStatus.partial),
        ("2000", "2500", PaymentStatus.overpaid),
        ("-500", "100", PaymentStatus.overpaid),
        ("1000", "999.98", PaymentStatus.partial),
    ],
)
def test_derive_status_buckets(total: str, paid: str, expected: PaymentStatus):
    assert derive_status(Decimal(total), Decimal(paid)) == expected


def test_derive_status_accepts_plain_numbers():
    assert derive_status(1500, 1500.0) == PaymentStatus.completed


@pytest.mark.parametrize("bad", [Decimal("NaN"), Decimal("Infinity"), float("inf"), True, "abc"])
def test_derive_status_rejects_non_finite_values(bad):
    with pytest.raises(InvalidInput):
        derive_status(bad, Decimal("0"))
    with pytest.raises(InvalidInput):
        derive_status(Decimal("100"), bad)

from __future__ import annotations

from decimal import Decimal

import pytest

from codeticket.pipeline.mapper import ImportRecordMapper
from codeticket.pipeline.processor import AdminFeeProcessor

VIP_FEE = Decimal("130.00")
DEFAULT_FEE = Decimal("80.00")


@pytest.fixture
def processor() -> AdminFeeProcessor:
    return AdminFeeProcessor(default_fee=DEFAULT_FEE, fees_by_ticket_type={"VIP": VIP_FEE})


@pytest.mark.parametrize(
    ("ticket_type", "expected"),
    [("vip", VIP_FEE), (" Vip ", VIP_FEE), ("pista", DEFAULT_FEE), ("", DEFAULT_FEE)],
)
def test_fee_for_matches_ticket_type_case_insensitively(
    processor: AdminFeeProcessor, ticket_type: str, expected: Decimal
) -> None:
    assert processor.fee_for(ticket_type) == expected


def test_process_sets_admin_fee_without_touching_other_fields(
    processor: AdminFeeProcessor, raw_row_factory
) -> None:
    record = ImportRecordMapper().map(raw_row_factory(0))

    processed = processor.process(record)

    assert processed.admin_fee == VIP_FEE
    assert processed.amount == record.amount
    assert processed.tax_id == record.tax_id
    assert record.admin_fee is None


def test_default_processor_has_no_overrides(raw_row_factory) -> None:
    record = ImportRecordMapper().map(raw_row_factory(0))

    assert AdminFeeProcessor().process(record).admin_fee == DEFAULT_FEE

"""
Business transform applied to each mapped record before it joins a chunk.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional

from codeticket.domain.models import ImportRecord
from codeticket.pipeline.abstract import RecordProcessor


class AdminFeeProcessor(RecordProcessor):
    """
    Derive the administration fee (`taxa_adm`) from the ticket type.

    Ticket types are matched case-insensitively against `fees_by_ticket_type`;
    anything else gets `default_fee`.
    """

    def __init__(
        self,
        default_fee: Decimal = Decimal("80.00"),
        fees_by_ticket_type: Optional[Mapping[str, Decimal]] = None,
    ) -> None:
        self.default_fee = default_fee
        self._fees = {
            ticket_type.strip().lower(): fee
            for ticket_type, fee in (fees_by_ticket_type or {}).items()
        }

    def fee_for(self, ticket_type: str) -> Decimal:
        return self._fees.get(ticket_type.strip().lower(), self.default_fee)

    def process(self, record: ImportRecord) -> ImportRecord:
        return record.model_copy(update={"admin_fee": self.fee_for(record.ticket_type)})


__all__ = ["AdminFeeProcessor"]

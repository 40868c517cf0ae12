"""
Row-to-record mapping for the import step.

Maps the seven positional columns of a ticket file line (cpf; cliente;
nascimento; evento; data; tipo_ingresso; valor) onto ImportRecord. Pure: no
I/O and no clock, so a mapping error is always reproducible from the row alone.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Tuple

from pydantic import ValidationError

from codeticket.domain.models import ImportRecord, RawRow
from codeticket.errors import MappingErrorKind, RowMappingError
from codeticket.pipeline.abstract import RowMapper

EXPECTED_FIELDS: Tuple[str, ...] = (
    "tax_id",
    "customer_name",
    "birth_date",
    "event_name",
    "event_date",
    "ticket_type",
    "amount",
)


def parse_decimal(value: str) -> Decimal:
    """Parse '1234.50' or '1234,50'."""
    text = value.strip()
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid decimal '{value}'") from exc
    if not parsed.is_finite():
        raise ValueError(f"invalid decimal '{value}'")
    return parsed


class ImportRecordMapper(RowMapper):
    """
    Map a RawRow into an ImportRecord, raising RowMappingError on bad input.
    """

    def __init__(self, date_format: str = "%d/%m/%Y") -> None:
        self.date_format = date_format
        self._parsers: Dict[str, Callable[[str], object]] = {
            "tax_id": str.strip,
            "customer_name": str.strip,
            "birth_date": self._parse_date,
            "event_name": str.strip,
            "event_date": self._parse_date,
            "ticket_type": str.strip,
            "amount": parse_decimal,
        }

    def _parse_date(self, value: str) -> date:
        return datetime.strptime(value.strip(), self.date_format).date()

    def map(self, row: RawRow) -> ImportRecord:
        if row.error is not None:
            raise self._error(row, MappingErrorKind.MALFORMED_LINE, row.error)
        if len(row.fields) != len(EXPECTED_FIELDS):
            raise self._error(
                row,
                MappingErrorKind.ARITY_MISMATCH,
                f"expected {len(EXPECTED_FIELDS)} fields, got {len(row.fields)}",
            )

        values: Dict[str, object] = {}
        for name, raw in zip(EXPECTED_FIELDS, row.fields):
            try:
                values[name] = self._parsers[name](raw)
            except ValueError as exc:
                raise self._error(row, MappingErrorKind.FIELD_PARSE_ERROR, str(exc), name) from exc

        try:
            return ImportRecord(**values)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            raise self._error(
                row, MappingErrorKind.FIELD_PARSE_ERROR, first["msg"], field
            ) from exc

    @staticmethod
    def _error(
        row: RawRow, kind: MappingErrorKind, cause: str, field: str | None = None
    ) -> RowMappingError:
        return RowMappingError(
            kind,
            cause,
            field=field,
            position=row.position,
            source=row.source,
            line_number=row.line_number,
        )


__all__ = ["EXPECTED_FIELDS", "ImportRecordMapper", "parse_decimal"]

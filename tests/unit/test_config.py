from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from codeticket.config import Settings
from codeticket.wiring import build_source, input_location

DEFAULT_CHUNK_SIZE = 200


@pytest.fixture(autouse=True)
def _no_env_file(monkeypatch, tmp_path: Path) -> None:
    # Keep a developer's .env out of these assertions.
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    settings = Settings()

    assert settings.job_name == "geracao-tickets"
    assert settings.chunk_size == DEFAULT_CHUNK_SIZE
    assert settings.row_error_threshold == 0
    assert settings.delimiter == ";"
    assert settings.comment_marker == "--"
    assert settings.import_table == "importacao"
    assert settings.admin_fee_default == Decimal("80.00")
    assert settings.admin_fee_by_ticket_type == {"vip": Decimal("130.00")}
    assert settings.source_location == Path("files")


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "50")
    monkeypatch.setenv("ROW_ERROR_THRESHOLD", "5")
    monkeypatch.setenv("ADMIN_FEE_BY_TICKET_TYPE", '{"vip": "150.00", "camarote": "200"}')
    monkeypatch.setenv("SOURCE_FILE", "inbox/tickets.csv")

    settings = Settings()

    assert settings.chunk_size == 50
    assert settings.row_error_threshold == 5
    assert settings.admin_fee_by_ticket_type["camarote"] == Decimal("200")
    assert settings.source_location == Path("inbox/tickets.csv")
    assert input_location(settings) == Path("inbox")
    assert build_source(settings).location == Path("inbox/tickets.csv")


@pytest.mark.parametrize(
    "overrides",
    [
        {"chunk_size": 0},
        {"row_error_threshold": -1},
        {"delimiter": ""},
        {"delimiter": ";;"},
        {"delimiter": "-"},
        {"import_table": "importacao; DROP TABLE x"},
        {"db_pool_min_size": 5, "db_pool_max_size": 2},
        {"malformed_line_policy": "ignore"},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)

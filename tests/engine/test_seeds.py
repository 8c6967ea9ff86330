from __future__ import annotations

import pytest

from seed_fetcher.config import SeedFormat
from seed_fetcher.engine import SeedRow, SeedStore, permute
from seed_fetcher.errors import ConfigError, SeedFormatError

COLUMNS = {"zipcode": 0, "number": 1, "housenumberext": 2}


def test_load_keeps_header_raw_lines_and_ordinals(sample_seed) -> None:
    data = SeedStore(SeedFormat(), COLUMNS).load(sample_seed)

    assert data.header == "zipcode,number,housenumberext"
    assert len(data) == 4
    assert [row.ordinal for row in data] == [1, 2, 3, 4]
    assert data[1].fields == {"zipcode": "1011AB", "number": "2", "housenumberext": "A"}
    assert data[1].raw == "1011AB,2,A"
    assert data[0].fields["housenumberext"] == ""


def test_selects_declared_columns_and_pads_short_lines() -> None:
    store = SeedStore(SeedFormat(line_terminator="\n", separator=";"), {"city": 2, "zip": 0})
    data = store.parse("zip;street;city;country\n1011AB;Dam;Amsterdam;NL\n2500CD\n")

    assert data[0].fields == {"city": "Amsterdam", "zip": "1011AB"}
    assert list(data[0].fields) == ["city", "zip"]
    assert data[1].fields == {"city": "", "zip": "2500CD"}
    assert data[0].raw == "1011AB;Dam;Amsterdam;NL"


def test_blank_lines_are_skipped_but_ordinals_follow_the_file() -> None:
    store = SeedStore(SeedFormat(), {"id": 0})
    data = store.parse("id\r\nA\r\n\r\nB\r\n")
    assert [(row.ordinal, row.fields["id"]) for row in data] == [(1, "A"), (3, "B")]


def test_mutate_hook_runs_once_per_row_after_ordinal_assignment() -> None:
    seen: list[int] = []

    def mutate(row: SeedRow) -> None:
        seen.append(row.ordinal)
        row.extra["upper"] = row.fields["id"].upper()

    data = SeedStore(SeedFormat(), {"id": 0}, mutate=mutate).parse("id\r\na\r\nb\r\n")
    assert seen == [1, 2]
    assert [row.extra["upper"] for row in data] == ["A", "B"]


def test_unsupported_format_is_rejected() -> None:
    with pytest.raises(SeedFormatError):
        SeedStore(SeedFormat(format="XLSX"), COLUMNS)


def test_missing_seed_file_is_a_config_error(tmp_path) -> None:
    with pytest.raises(ConfigError):
        SeedStore(SeedFormat(), COLUMNS).load(tmp_path / "absent.csv")


def test_permute_keeps_rows_and_ordinals() -> None:
    rows = SeedStore(SeedFormat(), {"id": 0}).parse("id\r\n" + "\r\n".join(str(n) for n in range(20))).rows

    shuffled = permute(rows, seed=7)

    assert shuffled != rows
    assert sorted(shuffled, key=lambda row: row.ordinal) == rows
    assert permute(rows, seed=7) == shuffled
    assert [row.ordinal for row in rows] == list(range(1, 21))


def test_seed_row_record_round_trip() -> None:
    row = SeedRow(ordinal=3, fields={"id": "A"}, raw="A,x", extra={"n": 1})
    assert SeedRow.from_record(row.to_record()) == row
    assert row.key(["id", "missing"]) == ("A", None)

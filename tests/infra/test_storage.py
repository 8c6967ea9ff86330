from __future__ import annotations

import json

import pytest

from seed_fetcher.engine import FetchOutcome, SeedRow
from seed_fetcher.errors import PersistenceError
from seed_fetcher.infra import JsonLinesCodec, ResponseLog, UserAgentPool
from seed_fetcher.infra.ua_pool import BUILTIN_USER_AGENTS


def outcome(ordinal: int, ident: str) -> FetchOutcome:
    return FetchOutcome(
        payload={"street": f"street-{ident}"},
        seed_row=SeedRow(ordinal=ordinal, fields={"id": ident}, raw=f"{ident},x"),
    )


def test_missing_log_means_no_progress(tmp_path) -> None:
    assert ResponseLog(tmp_path / "absent.jsonl").load_all() == []


def test_append_persists_one_line_per_outcome(tmp_path) -> None:
    path = tmp_path / "nested" / "log.jsonl"
    log = ResponseLog(path)
    log.append(outcome(2, "B"))
    log.append(outcome(1, "A"))
    log.close()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["seed_row"]["fields"] == {"id": "B"}

    loaded = ResponseLog(path).load_all()
    assert [item.seed_row.fields["id"] for item in loaded] == ["B", "A"]
    assert loaded[1] == outcome(1, "A")


def test_torn_tail_is_truncated(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    good = JsonLinesCodec().encode(outcome(1, "A"))
    path.write_text(good + "\n" + '{"payload": {"stre', encoding="utf-8")

    log = ResponseLog(path)
    assert len(log.load_all()) == 1
    assert path.read_text(encoding="utf-8") == good + "\n"

    log.append(outcome(2, "B"))
    log.close()
    assert len(ResponseLog(path).load_all()) == 2


def test_tail_cut_inside_multibyte_character_is_truncated(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    log = ResponseLog(path)
    first = FetchOutcome(payload={"city": "Zürich"}, seed_row=SeedRow(ordinal=1, fields={"id": "A"}, raw="A"))
    log.append(first)
    log.append(FetchOutcome(payload={"city": "Zürich"}, seed_row=SeedRow(ordinal=2, fields={"id": "B"}, raw="B")))
    log.close()
    data = path.read_bytes()
    first_line = data[: data.index(b"\n") + 1]
    path.write_bytes(data[: data.rindex("ü".encode("utf-8")) + 1])

    loaded = ResponseLog(path).load_all()

    assert loaded == [first]
    assert path.read_bytes() == first_line


def test_unterminated_valid_tail_is_kept(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    codec = JsonLinesCodec()
    path.write_text(codec.encode(outcome(1, "A")), encoding="utf-8")

    log = ResponseLog(path)
    assert len(log.load_all()) == 1
    log.append(outcome(2, "B"))
    log.close()

    assert [item.ordinal for item in ResponseLog(path).load_all()] == [1, 2]


def test_corrupt_middle_record_is_fatal(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    codec = JsonLinesCodec()
    path.write_text(
        codec.encode(outcome(1, "A")) + "\nnot json\n" + codec.encode(outcome(2, "B")) + "\n",
        encoding="utf-8",
    )
    with pytest.raises(PersistenceError, match=":2"):
        ResponseLog(path).load_all()


def test_legacy_records_are_decoded() -> None:
    line = json.dumps({"street": "Dam", "_seedrow": {"id": 4, "org": "1011AB,1", "zipcode": "1011AB"}})

    decoded = JsonLinesCodec().decode(line)

    assert decoded.payload == {"street": "Dam"}
    assert decoded.seed_row == SeedRow(ordinal=4, fields={"zipcode": "1011AB"}, raw="1011AB,1")


def test_unencodable_payload_is_a_persistence_error(tmp_path) -> None:
    log = ResponseLog(tmp_path / "log.jsonl")
    bad = FetchOutcome(payload={"value": object()}, seed_row=SeedRow(ordinal=1, fields={"id": "A"}, raw="A"))
    with pytest.raises(PersistenceError):
        log.append(bad)


def test_reset_removes_log(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    log = ResponseLog(path)
    log.append(outcome(1, "A"))
    log.reset()
    assert not path.exists()


def test_user_agent_pool_falls_back_to_builtin(monkeypatch) -> None:
    monkeypatch.setattr("random.choice", lambda seq: seq[0])
    pool = UserAgentPool(user_agents=["  ", ""])
    assert pool.get() == BUILTIN_USER_AGENTS[0]
    pool.refresh(["UA3", "UA4"])
    assert pool.get() == "UA3"

import threading

import pytest

from conftest import T0, FakeClock
from ledger import HEADER, Ledger, ledger_filename, user_id_from_filename
from models import InvestmentType, parse_timestamp


def test_append_then_read_round_trip(ledger):
    saved = ledger.append("u1", "GOLD", InvestmentType.GOLD, 2, 5300)
    rows = ledger.read("u1")
    assert len(rows) == 1
    row = rows[0]
    assert row.investment_name == "GOLD"
    assert row.investment_type is InvestmentType.GOLD
    assert row.amount == 2.0
    assert row.value == 5300.0
    assert parse_timestamp(row.timestamp_iso) == saved.timestamp == T0


def test_file_layout(ledger, tmp_path):
    ledger.append("u1", "Coins", InvestmentType.BTC, 0.5, 30000)
    ledger.append("u1", "Art", InvestmentType.CUSTOM, 1, 1200.5)
    lines = (tmp_path / "data" / "u1.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == HEADER == "investmentName,investmentType,amount,value,timestamp"
    assert lines[1].startswith("Coins,BTC,0.5,30000.0,2025-01-15T10:00:00.000Z")
    assert lines[2].split(",")[:4] == ["Art", "CUSTOM", "1.0", "1200.5"]


def test_ledgers_are_per_user(ledger):
    ledger.append("u1", "GOLD", InvestmentType.GOLD, 1, 2650)
    ledger.append("u2", "BTC", InvestmentType.BTC, 1, 60000)
    assert [s.investment_name for s in ledger.read("u1")] == ["GOLD"]
    assert [s.investment_name for s in ledger.read("u2")] == ["BTC"]
    assert ledger.read("nobody") == []


def test_timestamps_strictly_increase_when_clock_stalls(ledger):
    a = ledger.append("u1", "GOLD", InvestmentType.GOLD, 1, 2650)
    b = ledger.append("u1", "GOLD", InvestmentType.GOLD, 1, 2660)
    assert b.timestamp > a.timestamp
    assert ledger.latest("u1", "GOLD") == b


def test_timestamps_continue_after_restart(tmp_path):
    clock = FakeClock()
    Ledger(tmp_path, clock=clock).append("u1", "GOLD", InvestmentType.GOLD, 1, 2650)
    reopened = Ledger(tmp_path, clock=FakeClock(T0.replace(hour=9)))
    later = reopened.append("u1", "GOLD", InvestmentType.GOLD, 1, 2700)
    assert later.timestamp > T0


def test_malformed_rows_are_skipped(tmp_path, capsys):
    path = tmp_path / "u1.csv"
    path.write_text(
        HEADER + "\n"
        "GOLD,GOLD,2,5300,2025-01-15T10:00:00.000Z\n"
        "broken row\n"
        "X,PLATINUM,1,1,2025-01-15T10:00:00.000Z\n"
        "\n",
        encoding="utf-8",
    )
    rows = Ledger(tmp_path).read("u1")
    assert [r.investment_name for r in rows] == ["GOLD"]
    assert "skipped malformed row" in capsys.readouterr().out


def test_investment_names_distinct_in_first_seen_order(ledger):
    for name in ["GOLD", "BTC", "GOLD", "Art"]:
        ledger.append("u1", name, InvestmentType.GOLD, 1, 1)
    assert ledger.investment_names("u1") == ["GOLD", "BTC", "Art"]


@pytest.mark.parametrize("user_id", ["google|1234/../x", "sam+1@example.com", "..", "a_b", "a%2Eb", "ünï"])
def test_filename_maps_back_to_user_id(user_id):
    name = ledger_filename(user_id)
    assert "/" not in name and "|" not in name and not name.startswith(".")
    assert user_id_from_filename(name) == user_id


def test_similar_user_ids_get_separate_files(ledger):
    ledger.append("a|b", "Secret", InvestmentType.GOLD, 1, 1)
    ledger.append("a.b", "Other", InvestmentType.GOLD, 1, 1)
    assert ledger.read("a_b") == []
    assert [s.investment_name for s in ledger.read("a|b")] == ["Secret"]
    assert [s.investment_name for s in ledger.read("a.b")] == ["Other"]


def test_empty_user_id_is_rejected(ledger):
    with pytest.raises(ValueError):
        ledger.append("", "GOLD", InvestmentType.GOLD, 1, 1)


def test_user_ids_lists_ledger_files(ledger):
    ledger.append("b", "GOLD", InvestmentType.GOLD, 1, 1)
    ledger.append("a", "GOLD", InvestmentType.GOLD, 1, 1)
    ledger.append("sam+1@example.com", "GOLD", InvestmentType.GOLD, 1, 1)
    assert ledger.user_ids() == ["a", "b", "sam+1@example.com"]


def test_concurrent_appends_lose_nothing(tmp_path):
    ledger = Ledger(tmp_path)

    def worker(i):
        for j in range(20):
            ledger.append("u1", f"inv{i}", InvestmentType.GOLD, 1, j)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    rows = ledger.read("u1")
    assert len(rows) == 100
    stamps = [r.timestamp for r in rows]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 100

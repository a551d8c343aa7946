from __future__ import annotations

from rich.console import Console

from failover_probe.reconciler import ReconcileResult
from failover_probe.reporter import print_result, result_to_dict


def test_result_to_dict_keeps_database_order(stamp_factory) -> None:
    result = ReconcileResult(missing=[stamp_factory(9), stamp_factory(4)], loaded=12)

    payload = result_to_dict(result)

    assert payload["loaded"] == 12
    assert payload["missing_count"] == 2
    assert [entry["id"] for entry in payload["missing"]] == [9, 4]
    assert payload["missing"][0]["ts"] == stamp_factory(9).ts.isoformat()


def test_print_result_lists_missing_ids(stamp_factory) -> None:
    console = Console(record=True, width=120)

    print_result(ReconcileResult(missing=[stamp_factory(3), stamp_factory(5)], loaded=5), console)

    text = console.export_text()
    assert "2 missing" in text
    assert "5 rows loaded" in text
    assert stamp_factory(3).ts.isoformat() in text


def test_print_result_without_differences() -> None:
    console = Console(record=True, width=120)

    print_result(ReconcileResult(missing=[], loaded=None), console)

    text = console.export_text()
    assert "No differences" in text
    assert "not reloaded" in text

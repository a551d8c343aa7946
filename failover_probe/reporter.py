from __future__ import annotations

import json
from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from failover_probe.reconciler import ReconcileResult


def result_to_dict(result: ReconcileResult) -> Dict[str, Any]:
    """
    Plain, JSON-serialisable view of a reconciliation result.
    """
    return {
        "loaded": result.loaded,
        "missing_count": result.count,
        "missing": [
            {"id": stamp.id, "ts": stamp.ts.isoformat()} for stamp in result.missing
        ],
    }


def print_json(result: ReconcileResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print_json(json.dumps(result_to_dict(result)))


def print_result(result: ReconcileResult, console: Optional[Console] = None) -> None:
    """
    Render the missing stamps as a rich table.

    Rows keep the order PostgreSQL returned them in.
    """
    console = console or Console()

    loaded = "not reloaded" if result.loaded is None else f"{result.loaded:,} rows loaded"
    if not result.missing:
        console.print(f"[green]No differences[/green] ({loaded}).")
        return

    table = Table(
        title="Stamps missing from happy.stamps",
        box=box.ROUNDED,
        caption=f"{result.count:,} missing │ {loaded}",
    )
    table.add_column("Id", justify="right", style="cyan", no_wrap=True)
    table.add_column("Timestamp", style="magenta")

    for stamp in result.missing:
        table.add_row(str(stamp.id), stamp.ts.isoformat())

    console.print(table)


__all__ = ["print_json", "print_result", "result_to_dict"]

"""
Domain models for failover-probe.

`Stamp` is what the local log stores and what reconciliation reports: an id
and the instant it was generated. `Record` adds the payload that is sent to
the database alongside it. Both map onto `happy.stamps` / `happy.store`.
"""
from __future__ import annotations

import random
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field

PRINTABLE_FIRST = 32
PRINTABLE_LAST = 126


class Stamp(BaseModel):
    """
    A generated identifier and its timestamp.
    """

    id: int = Field(..., ge=1, description="Monotonic identifier, primary key remotely.")
    ts: AwareDatetime = Field(..., description="Generation instant, with offset.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }


class Record(Stamp):
    """
    A stamp together with the payload inserted into `happy.stamps`.
    """

    payload: str = Field("", description="Printable ASCII filler, identical for a whole run.")

    def stamp(self) -> Stamp:
        return Stamp(id=self.id, ts=self.ts)


def generate_payload(size: int, rng: Optional[random.Random] = None) -> str:
    """
    Draw `size` characters uniformly from the printable ASCII range.
    """
    if size <= 0:
        raise ValueError(f"invalid size for payload: {size}")
    rng = rng or random.SystemRandom()
    return "".join(chr(rng.randint(PRINTABLE_FIRST, PRINTABLE_LAST)) for _ in range(size))


__all__ = ["Record", "Stamp", "generate_payload"]

"""
Domain package for failover-probe.

Exports the records exchanged between the local log, the generator loop and
the reconciler. Keep this package focused on data definitions and validation.
"""

from failover_probe.domain.models import Record, Stamp, generate_payload

__all__ = [
    "Record",
    "Stamp",
    "generate_payload",
]

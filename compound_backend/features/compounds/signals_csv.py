"""Parse pasted ``position, δC, δH`` lines into NMR signals."""
from __future__ import annotations

import csv
from typing import List

from .errors import CompoundValidationError
from .schemas import NMRSignal


def parse_signal_csv(text: str) -> List[NMRSignal]:
    """One signal per non-blank line; quoted values may contain commas.

    Raises :class:`CompoundValidationError` naming the first offending line.
    """

    signals: List[NMRSignal] = []
    for number, line in enumerate((text or "").strip().splitlines(), start=1):
        if not line.strip():
            continue
        values = [value.strip() for value in next(csv.reader([line.strip()], skipinitialspace=True))]
        if len(values) < 3:
            message = f"Line {number}: Expected at least 3 columns (Position, δC, δH), got {len(values)}"
            raise CompoundValidationError(message, {"csv": message})
        if not values[0]:
            message = f"Line {number}: Position cannot be empty"
            raise CompoundValidationError(message, {"csv": message})
        signals.append(
            NMRSignal(
                viTri=values[0],
                scab=values[1],
                shacJHz=values[2],
                sortOrder=str(len(signals)),
            )
        )
    return signals


__all__ = ["parse_signal_csv"]

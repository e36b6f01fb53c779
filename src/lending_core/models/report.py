"""Outcome records for collection and processing batches."""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field

Outcome = Literal["success", "skipped", "failed"]


class CollectionOutcome(BaseModel):
    market_key: str
    date: dt.date
    outcome: Outcome
    reason: str | None = None


class CollectionReport(BaseModel):
    """Per-(market, date) results of a collection run."""

    outcomes: list[CollectionOutcome] = Field(default_factory=list)

    def record(self, market_key: str, day: dt.date, outcome: Outcome, reason: str | None = None) -> None:
        self.outcomes.append(
            CollectionOutcome(market_key=market_key, date=day, outcome=outcome, reason=reason)
        )

    def extend(self, other: CollectionReport) -> None:
        self.outcomes.extend(other.outcomes)

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    @property
    def collected(self) -> int:
        return self._count("success")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("failed")

    def failures(self) -> list[CollectionOutcome]:
        return [o for o in self.outcomes if o.outcome == "failed"]

    def summary(self) -> dict[str, int]:
        return {"collected": self.collected, "skipped": self.skipped, "failed": self.failed}


class ProcessingReport(BaseModel):
    processed: int = 0
    failed: int = 0
    rows_written: int = 0

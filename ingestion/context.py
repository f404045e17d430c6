"""
Per-run mutable state shared by the fetcher, walkers and run controller.

One RunContext is created per harvest run and passed by reference into
every component. The fetcher is the only writer of the call counter; the
walkers and the controller only read it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class RunContext:
    """
    HarvestRunState for one run.

    Attributes:
        call_budget: Maximum external calls this run may make
        calls_made: External call attempts so far (successful or not)
        calls_refused: Calls the budget gate refused to make
        sets_skipped: Resume offset the run was started with
        current_cursor: Index (in sorted order) of the group being processed
    """

    call_budget: int
    sets_skipped: int = 0
    calls_made: int = 0
    calls_refused: int = 0
    current_cursor: Optional[int] = None
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def has_reached_api_limit(self) -> bool:
        return self.calls_made >= self.call_budget

    @property
    def remaining_calls(self) -> int:
        return max(self.call_budget - self.calls_made, 0)

    def record_call(self) -> int:
        self.calls_made += 1
        return self.calls_made

    def record_refusal(self) -> None:
        self.calls_refused += 1

    def budget_label(self) -> str:
        return f"{self.calls_made}/{self.call_budget}"

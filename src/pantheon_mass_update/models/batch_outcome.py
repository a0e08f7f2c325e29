"""
Data models for per-site results and batch totals
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pantheon_mass_update.exceptions import PostActionError, SiteError


class SiteStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SiteResult:
    """
    The single outcome recorded for one site
    """
    site_id: str
    site_name: str
    status: SiteStatus
    update_count: int = 0
    error: Optional[SiteError] = None
    post_action_errors: List[PostActionError] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        return str(self.error) if self.error else None


@dataclass
class BatchOutcome:
    """
    Counters for a whole run; each site lands in exactly one bucket
    """
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[SiteResult] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, result: SiteResult) -> None:
        """Add a site result to its bucket"""
        with self._lock:
            if any(existing.site_id == result.site_id for existing in self.results):
                raise ValueError(f"Outcome already recorded for site {result.site_name}")
            if result.status is SiteStatus.SUCCEEDED:
                self.succeeded += 1
            elif result.status is SiteStatus.FAILED:
                self.failed += 1
            else:
                self.skipped += 1
            self.results.append(result)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    @property
    def is_complete(self) -> bool:
        """Check the succeeded + failed + skipped == total invariant"""
        return self.processed == self.total

    @property
    def failed_sites(self) -> List[str]:
        return [r.site_name for r in self.results if r.status is SiteStatus.FAILED]

    @property
    def skipped_sites(self) -> List[str]:
        return [r.site_name for r in self.results if r.status is SiteStatus.SKIPPED]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "failed_sites": self.failed_sites,
            "skipped_sites": self.skipped_sites,
            "failure_reasons": {
                r.site_name: r.reason for r in self.results if r.status is SiteStatus.FAILED
            },
        }

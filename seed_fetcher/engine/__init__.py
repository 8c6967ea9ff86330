"""Engine components orchestrating seeds → dedup → fetch → log → refine."""

from .backoff import BackoffController, BackoffSettings, FailureVerdict, RunState, RunStatus
from .dedup import DedupIndex
from .fetcher import HttpTransport
from .hooks import HookSet
from .outcome import FetchOutcome
from .refiner import Refiner
from .scheduler import RunStats, Scheduler, TickResult
from .seeds import SeedData, SeedRow, SeedStore, permute

__all__ = [
    "BackoffController",
    "BackoffSettings",
    "DedupIndex",
    "FailureVerdict",
    "FetchOutcome",
    "HookSet",
    "HttpTransport",
    "Refiner",
    "RunState",
    "RunStats",
    "RunStatus",
    "Scheduler",
    "SeedData",
    "SeedRow",
    "SeedStore",
    "TickResult",
    "permute",
]

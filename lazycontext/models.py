from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass(frozen=True)
class RepositoryReference:
    url: str
    name: Optional[str] = None


@dataclass(frozen=True)
class GithubRepo:
    owner: str
    repo: str


@dataclass(frozen=True)
class Missing:
    label = "missing"


@dataclass(frozen=True)
class UpToDate:
    label = "up to date"


@dataclass(frozen=True)
class Behind:
    commit_count: int
    label = "behind"


@dataclass(frozen=True)
class Modified:
    label = "modified"


SyncState = Union[Missing, UpToDate, Behind, Modified]


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class SyncAction:
    CLONE = "clone"
    PULL = "pull"


@dataclass
class SyncReport:
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)
    states: dict[str, SyncState] = field(default_factory=dict)
    actions: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class RepoRow:
    """What the dashboard knows about one tracked repository."""

    ref: RepositoryReference
    name: str
    state: Optional[SyncState] = None
    busy: str = ""
    error: str = ""


TARGET_DIR = ".context"
REGISTRY_FILENAME = "config.json"
DEFAULT_UPSTREAM = "origin/main"
MAX_LOG_ENTRIES = 1000

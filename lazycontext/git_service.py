import asyncio
import logging
import os
from typing import Awaitable, Callable, Iterable, Optional

from .errors import GitError, LazyContextError, ProcessLaunchError
from .log_store import COMMAND, SUCCESS
from .models import (
    DEFAULT_UPSTREAM,
    TARGET_DIR,
    Behind,
    CommandResult,
    Missing,
    Modified,
    RepositoryReference,
    SyncAction,
    SyncReport,
    SyncState,
    UpToDate,
)
from .url import repo_name

_LOGGER = logging.getLogger(__name__)

RunnerFn = Callable[..., Awaitable[CommandResult]]
ResultFn = Callable[[str, Optional[SyncState], Optional[Exception]], None]


class GitService:
    def __init__(
        self,
        target_dir: str = TARGET_DIR,
        runner: Optional[RunnerFn] = None,
        clone_depth: int = 0,
        fetch_on_check: bool = False,
        concurrency: int = 4,
    ) -> None:
        self.target_dir = target_dir
        self._runner = runner
        self._clone_depth = clone_depth
        self._fetch_on_check = fetch_on_check
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._locks: dict[str, asyncio.Lock] = {}

    def repo_path(self, ref: RepositoryReference) -> str:
        return os.path.join(self.target_dir, repo_name(ref))

    def _lock_for(self, path: str) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    async def run(self, args: list[str], cwd: Optional[str] = None) -> CommandResult:
        command = " ".join(args)
        _LOGGER.info("$ %s", command, extra={"kind": COMMAND})
        if self._runner is not None:
            return await self._runner(args, cwd=cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await self._communicate(proc)
        except FileNotFoundError:
            raise ProcessLaunchError(command, "command not found") from None
        except PermissionError:
            raise ProcessLaunchError(command, "permission denied") from None
        except OSError as exc:
            raise ProcessLaunchError(command, str(exc)) from exc
        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    @staticmethod
    async def _communicate(proc) -> tuple[bytes, bytes]:
        try:
            return await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

    async def run_git_checked(
        self,
        args: list[str],
        operation: str,
        target: str,
        error_prefix: str,
    ) -> CommandResult:
        result = await self.run(args)
        if result.exit_code == 0:
            return result
        detail = result.stderr.strip() or result.stdout.strip()
        message = f"{error_prefix}: {detail}" if detail else error_prefix
        _LOGGER.error("%s (exit %s)", message, result.exit_code)
        raise GitError(
            message, exit_code=result.exit_code, operation=operation, target=target
        )

    async def directory_exists(self, path: str) -> bool:
        result = await self.run(["test", "-d", path])
        return result.exit_code == 0

    async def resolve_upstream(self, path: str) -> str:
        result = await self.run(
            [
                "git",
                "-C",
                path,
                "rev-parse",
                "--abbrev-ref",
                "--symbolic-full-name",
                "@{upstream}",
            ]
        )
        upstream = result.stdout.strip()
        if result.exit_code == 0 and upstream:
            return upstream
        result = await self.run(
            ["git", "-C", path, "symbolic-ref", "--short", "refs/remotes/origin/HEAD"]
        )
        upstream = result.stdout.strip()
        if result.exit_code == 0 and upstream:
            return upstream
        return DEFAULT_UPSTREAM

    async def check_status(self, ref: RepositoryReference) -> SyncState:
        path = self.repo_path(ref)
        async with self._lock_for(path):
            return await self._classify(ref, path)

    async def _classify(self, ref: RepositoryReference, path: str) -> SyncState:
        name = repo_name(ref)
        if not await self.directory_exists(path):
            return Missing()
        if self._fetch_on_check:
            await self._fetch(name, path)
        status = await self.run_git_checked(
            ["git", "-C", path, "status", "--porcelain"],
            operation="status",
            target=name,
            error_prefix=f"Failed to read status of {name}",
        )
        if status.stdout.strip():
            return Modified()
        upstream = await self.resolve_upstream(path)
        counted = await self.run_git_checked(
            ["git", "-C", path, "rev-list", "--count", f"HEAD..{upstream}"],
            operation="rev-list",
            target=name,
            error_prefix=f"Failed to count commits behind {upstream} for {name}",
        )
        raw = counted.stdout.strip()
        if not (raw.isascii() and raw.isdigit()):
            raise GitError(
                f"Unexpected rev-list output for {name}: {raw!r}",
                operation="rev-list",
                target=name,
            )
        count = int(raw)
        if count == 0:
            return UpToDate()
        return Behind(count)

    async def clone(self, ref: RepositoryReference) -> None:
        name = repo_name(ref)
        args = ["git", "clone", "--quiet"]
        if self._clone_depth > 0:
            args += ["--depth", str(self._clone_depth)]
        args += [ref.url, self.repo_path(ref)]
        await self.run_git_checked(
            args,
            operation=SyncAction.CLONE,
            target=name,
            error_prefix=f"Failed to clone {ref.url}",
        )

    async def pull(self, ref: RepositoryReference) -> None:
        name = repo_name(ref)
        await self.run_git_checked(
            ["git", "-C", self.repo_path(ref), "pull", "--quiet", "--ff-only"],
            operation=SyncAction.PULL,
            target=name,
            error_prefix=f"Failed to pull {ref.url}",
        )

    async def sync(
        self, ref: RepositoryReference, state: Optional[SyncState] = None
    ) -> str:
        """Clone a missing working copy, otherwise pull. Returns the action taken."""
        path = self.repo_path(ref)
        name = repo_name(ref)
        async with self._lock_for(path):
            if state is None:
                missing = not await self.directory_exists(path)
            else:
                missing = isinstance(state, Missing)
            if missing:
                self._ensure_target_dir(name)
                await self.clone(ref)
                action = SyncAction.CLONE
            else:
                await self.pull(ref)
                action = SyncAction.PULL
        _LOGGER.info("%s synced (%s)", name, action, extra={"kind": SUCCESS})
        return action

    def _ensure_target_dir(self, name: str) -> None:
        try:
            os.makedirs(self.target_dir, exist_ok=True)
        except OSError as exc:
            message = f"Failed to create {self.target_dir}: {exc}"
            _LOGGER.error("%s", message)
            raise GitError(message, operation=SyncAction.CLONE, target=name) from exc

    async def _fetch(self, name: str, path: str) -> None:
        await self.run_git_checked(
            ["git", "-C", path, "fetch", "--quiet"],
            operation="fetch",
            target=name,
            error_prefix=f"Failed to fetch {name}",
        )

    async def fetch(self, ref: RepositoryReference) -> bool:
        path = self.repo_path(ref)
        async with self._lock_for(path):
            if not await self.directory_exists(path):
                return False
            await self._fetch(repo_name(ref), path)
        return True

    async def sync_all(
        self,
        refs: Iterable[RepositoryReference],
        on_result: Optional[ResultFn] = None,
    ) -> SyncReport:
        report = SyncReport()

        async def sync_one(ref: RepositoryReference) -> None:
            async with self._semaphore:
                name = ref.name or ref.url
                try:
                    name = repo_name(ref)
                    action = await self.sync(ref)
                    state = await self.check_status(ref)
                except LazyContextError as exc:
                    _LOGGER.error("Failed to sync %s: %s", name, exc)
                    report.failed.append((name, exc))
                    if on_result is not None:
                        on_result(name, None, exc)
                    return
                report.succeeded.append(name)
                report.actions[name] = action
                report.states[name] = state
                if on_result is not None:
                    on_result(name, state, None)

        await asyncio.gather(*(sync_one(ref) for ref in refs))
        _LOGGER.info(
            "Sync all finished: %d succeeded, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

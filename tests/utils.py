from __future__ import annotations

from typing import Callable, Optional
import asyncio
import subprocess

from lazycontext.git_service import GitService
from lazycontext.models import CommandResult


class FakeGit:
    """Scripted runner: unknown commands succeed with empty output."""

    def __init__(self) -> None:
        self._outputs: dict[tuple[str, ...], CommandResult] = {}
        self._errors: dict[tuple[str, ...], Exception] = {}
        self._gates: dict[tuple[str, ...], asyncio.Event] = {}
        self.calls: list[tuple[str, ...]] = []

    def set(
        self, args: list[str], output: str = "", exit_code: int = 0, stderr: str = ""
    ) -> None:
        self._outputs[tuple(args)] = CommandResult(exit_code, output, stderr)

    def fail_launch(self, args: list[str], exc: Exception) -> None:
        self._errors[tuple(args)] = exc

    def gate(self, args: list[str]) -> asyncio.Event:
        event = asyncio.Event()
        self._gates[tuple(args)] = event
        return event

    def commands(self, program: Optional[str] = None) -> list[tuple[str, ...]]:
        if program is None:
            return list(self.calls)
        return [call for call in self.calls if call and call[0] == program]

    async def __call__(self, args: list[str], *, cwd: str | None = None) -> CommandResult:
        key = tuple(args)
        self.calls.append(key)
        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()
        if key in self._errors:
            raise self._errors[key]
        return self._outputs.get(key, CommandResult(0, "", ""))


def make_git_service(fake: FakeGit, target_dir: str = ".context", **kwargs) -> GitService:
    return GitService(target_dir=target_dir, runner=fake, **kwargs)


def status_args(path: str) -> list[str]:
    return ["git", "-C", path, "status", "--porcelain"]


def upstream_args(path: str) -> list[str]:
    return [
        "git",
        "-C",
        path,
        "rev-parse",
        "--abbrev-ref",
        "--symbolic-full-name",
        "@{upstream}",
    ]


def rev_list_args(path: str, upstream: str = "origin/main") -> list[str]:
    return ["git", "-C", path, "rev-list", "--count", f"HEAD..{upstream}"]


async def wait_for_workers(app) -> None:
    while True:
        workers = list(app.workers)
        if not workers:
            return
        try:
            await app.workers.wait_for_complete(workers)
        except Exception as exc:
            if exc.__class__.__name__ != "WorkerCancelled":
                raise


async def wait_for(
    predicate: Callable[[], bool], *, timeout: float = 1.0, interval: float = 0.01
) -> None:
    loop = asyncio.get_running_loop()
    start = loop.time()
    while True:
        if predicate():
            return
        if loop.time() - start > timeout:
            raise AssertionError("timed out waiting for condition")
        await asyncio.sleep(interval)


GIT_IDENTITY = ["-c", "user.name=Test", "-c", "user.email=test@example.com"]


def git(*args: str, cwd=None) -> str:
    """Run a real git command for integration fixtures."""
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout

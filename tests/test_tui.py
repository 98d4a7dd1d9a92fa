import json

import pytest

from textual.widgets import DataTable, Input, RichLog

from lazycontext.app import LazyContext, format_status, summarize
from lazycontext.config import AppConfig
from lazycontext.errors import GitError
from lazycontext.models import (
    Behind,
    Missing,
    Modified,
    RepoRow,
    RepositoryReference,
    UpToDate,
)
from lazycontext.registry import Registry
from lazycontext.screens import ConfirmScreen, HelpScreen, InputScreen

from tests.utils import FakeGit, make_git_service, rev_list_args, wait_for, wait_for_workers


@pytest.fixture
def workspace(tmp_path):
    target = tmp_path / ".context"
    registry_path = target / "config.json"
    target.mkdir()
    registry_path.write_text(
        json.dumps(
            {
                "version": 1,
                "repos": [
                    {"name": "alpha", "url": "https://github.com/owner/alpha.git"},
                    {"name": "beta", "url": "https://github.com/owner/beta.git"},
                ],
            }
        ),
        encoding="utf-8",
    )
    fake = FakeGit()
    fake.set(["test", "-d", f"{target}/alpha"], exit_code=1)
    fake.set(rev_list_args(f"{target}/beta"), "2\n")
    config = AppConfig(target_dir=str(target), registry_path=str(registry_path))
    app = LazyContext(
        config=config,
        registry=Registry(str(registry_path)),
        git_service=make_git_service(fake, target_dir=str(target)),
    )
    return app, fake, target, registry_path


@pytest.mark.asyncio
async def test_tui_loads_and_syncs(workspace) -> None:
    app, fake, target, _ = workspace
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        table = app.query_one("#repo-table", DataTable)
        assert table.row_count == 2
        assert app.rows["alpha"].state == Missing()
        assert app.rows["beta"].state == Behind(2)
        await wait_for(lambda: getattr(app.focused, "id", None) == "repo-table")

        await pilot.press("?")
        await wait_for(lambda: isinstance(app.screen, HelpScreen))
        await pilot.press("escape")
        await wait_for(lambda: not isinstance(app.screen, HelpScreen))

        await pilot.press("enter")
        clone_alpha = ("git", "clone", "--quiet", "https://github.com/owner/alpha.git", f"{target}/alpha")
        await wait_for(lambda: clone_alpha in fake.calls)
        await wait_for_workers(app)

        await pilot.press("j")
        await wait_for(lambda: table.cursor_row == 1)
        await pilot.press("enter")
        pull_beta = ("git", "-C", f"{target}/beta", "pull", "--quiet", "--ff-only")
        await wait_for(lambda: pull_beta in fake.calls)
        await wait_for_workers(app)
        assert app.rows["beta"].error == ""


@pytest.mark.asyncio
async def test_tui_failed_sync_keeps_state_and_flags_error(workspace) -> None:
    app, fake, target, _ = workspace
    fake.set(
        ["git", "-C", f"{target}/beta", "pull", "--quiet", "--ff-only"],
        exit_code=1,
        stderr="fatal: Not possible to fast-forward, aborting.",
    )
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        await pilot.press("j")
        await pilot.press("enter")
        await wait_for(lambda: app.rows["beta"].error != "")
        await wait_for_workers(app)
        row = app.rows["beta"]
        assert row.state == Behind(2)
        assert "fast-forward" in row.error
        assert format_status(row).endswith("[bold red]![/]")


@pytest.mark.asyncio
async def test_tui_sync_all_reports_every_repo(workspace) -> None:
    app, fake, target, _ = workspace
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        await pilot.press("s")
        await wait_for(lambda: any(call[:2] == ("git", "clone") for call in fake.calls))
        await wait_for_workers(app)
        assert any(call[:2] == ("git", "clone") for call in fake.calls)
        assert ("git", "-C", f"{target}/beta", "pull", "--quiet", "--ff-only") in fake.calls
        assert all(row.busy == "" for row in app.rows.values())


@pytest.mark.asyncio
async def test_tui_sync_all_ignores_second_request_while_running(workspace) -> None:
    app, fake, target, _ = workspace
    pull_beta = ["git", "-C", f"{target}/beta", "pull", "--quiet", "--ff-only"]
    gate = fake.gate(pull_beta)
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        await pilot.press("s")
        await wait_for(lambda: tuple(pull_beta) in fake.calls)
        await pilot.press("s")
        await pilot.pause()
        assert app.rows["beta"].busy == "syncing"

        gate.set()
        await wait_for(lambda: app.rows["beta"].busy == "")
        await wait_for_workers(app)
        assert all(row.busy == "" for row in app.rows.values())
        assert fake.calls.count(tuple(pull_beta)) == 1
        assert app.rows["beta"].state == Behind(2)
        assert app.rows["alpha"].error == ""


@pytest.mark.asyncio
async def test_tui_add_and_remove_repository(workspace) -> None:
    app, fake, target, registry_path = workspace
    fake.set(["test", "-d", f"{target}/gamma"], exit_code=1)
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        table = app.query_one("#repo-table", DataTable)

        await pilot.press("a")
        await wait_for(lambda: isinstance(app.focused, Input))
        await pilot.press("n", "o", "p", "e", "enter")
        await wait_for(lambda: getattr(app.screen, "error", "") == "Invalid GitHub URL")
        assert isinstance(app.screen, InputScreen)

        app.screen.query_one(Input).value = "https://github.com/owner/gamma.git"
        await pilot.press("enter")
        await wait_for(lambda: not isinstance(app.screen, InputScreen))
        await wait_for_workers(app)
        assert table.row_count == 3
        assert ("git", "clone", "--quiet", "https://github.com/owner/gamma.git", f"{target}/gamma") in fake.calls
        saved = json.loads(registry_path.read_text(encoding="utf-8"))
        assert [repo["name"] for repo in saved["repos"]] == ["alpha", "beta", "gamma"]

        await pilot.press("x")
        await wait_for(lambda: isinstance(app.screen, ConfirmScreen))
        await pilot.click("#confirm")
        await wait_for(lambda: not isinstance(app.screen, ConfirmScreen))
        assert table.row_count == 2
        saved = json.loads(registry_path.read_text(encoding="utf-8"))
        assert [repo["name"] for repo in saved["repos"]] == ["beta", "gamma"]


@pytest.mark.asyncio
async def test_tui_toggle_console(workspace) -> None:
    app, _, _, _ = workspace
    async with app.run_test() as pilot:
        await wait_for_workers(app)
        log_pane = app.query_one("#log-pane", RichLog)
        assert log_pane.styles.display == "none"
        await pilot.press("grave_accent")
        await wait_for(lambda: log_pane.styles.display == "block")
        await pilot.press("grave_accent")
        await wait_for(lambda: log_pane.styles.display == "none")


def test_format_status_covers_every_state() -> None:
    ref = RepositoryReference(url="https://github.com/owner/repo", name="repo")
    assert "up to date" in format_status(RepoRow(ref, "repo", state=UpToDate()))
    assert "3 behind" in format_status(RepoRow(ref, "repo", state=Behind(3)))
    assert "modified" in format_status(RepoRow(ref, "repo", state=Modified()))
    assert "missing" in format_status(RepoRow(ref, "repo", state=Missing()))
    assert "loading" in format_status(RepoRow(ref, "repo", busy="loading"))
    assert "cloning" in format_status(RepoRow(ref, "repo", busy="clone"))
    assert "pulling" in format_status(RepoRow(ref, "repo", busy="pull"))
    failed = RepoRow(ref, "repo", error=str(GitError("boom", exit_code=1)))
    assert "error" in format_status(failed)
    assert "missing" not in format_status(failed)


def test_summarize_counts_synced_and_missing() -> None:
    ref = RepositoryReference(url="https://github.com/owner/repo", name="repo")
    rows = [
        RepoRow(ref, "a", state=UpToDate()),
        RepoRow(ref, "b", state=Missing()),
        RepoRow(ref, "c", state=Behind(1)),
    ]
    summary = summarize(rows)
    assert "1/3 synced" in summary
    assert "(1 missing)" in summary

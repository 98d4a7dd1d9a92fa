import asyncio
from typing import Callable, Optional

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.command import DiscoveryHit, Hit, Provider
from textual.containers import Horizontal
from textual.css.query import NoMatches
from textual.widgets import (
    DataTable,
    Footer,
    Header,
    RichLog,
    Static,
)
from textual.widgets.data_table import CellDoesNotExist
from rich.text import Text

from .config import AppConfig
from .errors import LazyContextError, ParseError
from .git_service import GitService
from .log_store import COMMAND, ERROR, SUCCESS, LogEntry, LogStore
from .models import (
    Behind,
    Missing,
    Modified,
    RepoRow,
    RepositoryReference,
    SyncAction,
    SyncState,
    UpToDate,
)
from .registry import Registry
from .screens import (
    ConfirmScreen,
    FocusableRichLog,
    HelpScreen,
    InputScreen,
)
from .url import parse_github_url

LOADING = "loading"
SYNCING = "syncing"

LOG_STYLES = {SUCCESS: "green", ERROR: "red", COMMAND: "blue"}


def describe_state(state: SyncState) -> str:
    if isinstance(state, UpToDate):
        return "[green]✓ up to date[/]"
    if isinstance(state, Behind):
        return f"[yellow]… {state.commit_count} behind[/]"
    if isinstance(state, Modified):
        return "[yellow]… modified[/]"
    return "[red]✗ missing[/]"


def format_status(row: RepoRow) -> str:
    if row.busy == LOADING:
        return "[dim]◐ loading...[/]"
    if row.busy == SyncAction.CLONE:
        return "[cyan]◐ cloning...[/]"
    if row.busy == SyncAction.PULL:
        return "[cyan]◐ pulling...[/]"
    if row.busy == SYNCING:
        return "[cyan]◐ syncing...[/]"
    if row.state is None:
        return "[bold red]! error[/]" if row.error else "[dim]? unknown[/]"
    text = describe_state(row.state)
    if row.error:
        text += " [bold red]![/]"
    return text


def summarize(rows: list[RepoRow]) -> str:
    synced = sum(1 for row in rows if isinstance(row.state, UpToDate))
    missing = sum(1 for row in rows if isinstance(row.state, Missing))
    summary = f"[bold cyan]Repositories[/]  {synced}/{len(rows)} synced"
    if missing:
        summary += f" [red]({missing} missing)[/]"
    return summary


def validate_github_url(value: str) -> Optional[str]:
    try:
        parse_github_url(value)
    except ParseError:
        return "Invalid GitHub URL"
    return None


class LazyContextCommands(Provider):
    """Command provider for repository actions."""
    COMMANDS = [
        ("Sync repository", "sync", "Clone or pull the selected repository"),
        ("Sync all repositories", "sync_all", "Clone or pull every repository"),
        ("Add repository", "add", "Track a new GitHub repository"),
        ("Remove repository", "remove", "Stop tracking the selected repository"),
        ("Fetch repository", "fetch", "Fetch the selected repository and re-check it"),
        ("Refresh statuses", "refresh", "Reload the registry and re-check everything"),
        ("Toggle command log", "toggle_console", "Show or hide the command log"),
        ("Show help", "help", "Show help screen"),
    ]
    def _make_callback(self, action_name: str):
        def callback():
            action = getattr(self.app, f"action_{action_name}", None)
            if action is None:
                return
            result = action()
            if asyncio.iscoroutine(result):
                asyncio.create_task(result)
        return callback
    async def discover(self):
        for name, action, help_text in self.COMMANDS:
            yield DiscoveryHit(name, self._make_callback(action), help=help_text)
    async def search(self, query: str):
        matcher = self.matcher(query)
        for name, action, help_text in self.COMMANDS:
            match = matcher.match(name)
            if match > 0:
                yield Hit(match, matcher.highlight(name), self._make_callback(action), help=help_text)


class LazyContext(App):
    TITLE = "LazyContext"
    COMMANDS = {LazyContextCommands}
    CSS = """
    #summary { height: 1; padding: 0 1; }
    #main-content { height: 1fr; }
    #repo-table { width: 1fr; height: 100%; border: solid $secondary; }
    #log-pane { width: 1fr; height: 100%; background: $surface-darken-1; padding: 0 1; border: solid $secondary; display: none; }
    .focused { border: solid $primary; }
    """
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+q", "quit", "Quit", show=False),
        Binding("ctrl+c", "quit", "Quit", show=False),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("down", "cursor_down", "Down", show=False),
        Binding("up", "cursor_up", "Up", show=False),
        Binding("enter", "sync", "Sync"),
        Binding("s", "sync_all", "Sync All"),
        Binding("a", "add", "Add"),
        Binding("x", "remove", "Remove"),
        Binding("f", "fetch", "Fetch", show=False),
        Binding("r", "refresh", "Refresh"),
        Binding("grave_accent", "toggle_console", "Log"),
        Binding("?", "help", "Help"),
        Binding("ctrl+slash", "command_palette", "Commands Palette", show=False),
    ]

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        registry: Optional[Registry] = None,
        git_service: Optional[GitService] = None,
        log_store: Optional[LogStore] = None,
    ):
        super().__init__()
        self.config = config or AppConfig()
        self.registry = registry or Registry(self.config.registry_path)
        self.git = git_service or GitService(
            target_dir=self.config.target_dir,
            clone_depth=self.config.clone_depth,
            fetch_on_check=self.config.fetch_on_check,
            concurrency=self.config.sync_concurrency,
        )
        self.log_store = log_store or LogStore(self.config.max_log_entries)
        self.rows: dict[str, RepoRow] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._sync_all_running = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(id="summary")
        with Horizontal(id="main-content"):
            yield DataTable(id="repo-table", cursor_type="row")
            yield FocusableRichLog(id="log-pane", wrap=True, markup=False, auto_scroll=True)
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#repo-table", DataTable)
        table.border_title = "[bold white]Repositories[/]"
        table.add_column("Repository", key="name")
        table.add_column("Status", key="status")
        table.add_column("URL", key="url")
        table.focus()
        table.add_class("focused")
        log_pane = self.query_one("#log-pane", RichLog)
        log_pane.border_title = "[bold white]Command Log[/]"
        for entry in reversed(self.log_store.entries()):
            self._write_log_entry(entry)
        self._unsubscribe = self.log_store.subscribe(self._write_log_entry)
        self.update_summary()
        self.load_registry()

    def on_unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _try_query_one(self, selector, expect_type):
        try:
            return self.query_one(selector, expect_type)
        except NoMatches:
            return None

    def _write_log_entry(self, entry: LogEntry) -> None:
        log_pane = self._try_query_one("#log-pane", RichLog)
        if log_pane is None:
            return
        line = Text.assemble(
            (entry.timestamp.strftime("%H:%M:%S"), "dim"),
            " ",
            (entry.label.ljust(3), LOG_STYLES.get(entry.kind, "white")),
            " ",
            entry.message,
        )
        log_pane.write(line)
        if entry.details:
            log_pane.write(Text("             " + entry.details, style="dim"))

    def _selected_name(self) -> Optional[str]:
        table = self.query_one("#repo-table", DataTable)
        if table.row_count == 0 or table.cursor_row is None:
            return None
        row_key = table.coordinate_to_cell_key((table.cursor_row, 0)).row_key
        return str(row_key.value)

    def _selected_row(self) -> Optional[RepoRow]:
        name = self._selected_name()
        if name is None:
            self.notify("No repository selected", severity="warning")
            return None
        return self.rows.get(name)

    def _is_syncing(self, row: RepoRow) -> bool:
        return row.busy in {SyncAction.CLONE, SyncAction.PULL, SYNCING}

    def update_summary(self) -> None:
        summary = self._try_query_one("#summary", Static)
        if summary is not None:
            summary.update(summarize(list(self.rows.values())))

    def render_row(self, name: str) -> None:
        row = self.rows.get(name)
        table = self._try_query_one("#repo-table", DataTable)
        if row is None or table is None:
            return
        try:
            table.update_cell(name, "status", format_status(row))
        except CellDoesNotExist:
            return
        self.update_summary()

    def set_rows(self, refs: tuple[RepositoryReference, ...]) -> None:
        previous = self.rows
        self.rows = {}
        for ref in refs:
            name = ref.name or ref.url
            row = previous.get(name) or RepoRow(ref=ref, name=name)
            row.ref = ref
            self.rows[name] = row
        table = self.query_one("#repo-table", DataTable)
        current = self._selected_name() if table.row_count else None
        table.clear()
        for name, row in self.rows.items():
            table.add_row(Text(name, style="bold"), format_status(row), row.ref.url, key=name)
        if current and current in self.rows:
            table.move_cursor(row=table.get_row_index(current))
        self.update_summary()

    @work(exclusive=True, group="registry")
    async def load_registry(self) -> None:
        self.query_one(Header).loading = True
        try:
            data = self.registry.load()
        except LazyContextError as exc:
            self.notify(f"Failed to load registry: {exc}", severity="error")
            self.set_rows(())
            return
        finally:
            self.query_one(Header).loading = False
        self.set_rows(data.repos)
        self.refresh_statuses()

    def refresh_statuses(self) -> None:
        for name, row in self.rows.items():
            if not self._is_syncing(row):
                self.run_worker(self.check_repo(name), group="check")

    async def check_repo(self, name: str) -> None:
        row = self.rows.get(name)
        if row is None:
            return
        row.busy = LOADING
        self.render_row(name)
        try:
            state = await self.git.check_status(row.ref)
        except LazyContextError as exc:
            row.state = None
            row.error = str(exc)
            self.notify(f"Failed to check {name}: {exc}", severity="error")
        else:
            row.state = state
            row.error = ""
        finally:
            row.busy = ""
        self.render_row(name)

    async def sync_repo(self, name: str) -> None:
        row = self.rows.get(name)
        if row is None:
            return
        if isinstance(row.state, Missing):
            row.busy = SyncAction.CLONE
        elif row.state is None:
            row.busy = SYNCING
        else:
            row.busy = SyncAction.PULL
        self.render_row(name)
        try:
            action = await self.git.sync(row.ref)
        except LazyContextError as exc:
            row.busy = ""
            row.error = str(exc)
            self.render_row(name)
            self.notify(f"Failed to sync {name}: {exc}", severity="error")
            return
        row.busy = ""
        await self.check_repo(name)
        verb = "cloned" if action == SyncAction.CLONE else "pulled"
        self.notify(f"{name} {verb} successfully")

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.action_sync()

    def action_cursor_down(self) -> None:
        self.query_one("#repo-table", DataTable).action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#repo-table", DataTable).action_cursor_up()

    def action_sync(self) -> None:
        row = self._selected_row()
        if row is None:
            return
        if self._is_syncing(row):
            self.notify(f"{row.name} is already syncing", severity="warning")
            return
        self.run_worker(self.sync_repo(row.name), group="sync")

    def action_sync_all(self) -> None:
        if not self.rows:
            self.notify("No repositories to sync", severity="warning")
            return
        if self._sync_all_running:
            self.notify("Sync all is already running", severity="warning")
            return
        self._sync_all_running = True
        self.sync_all_repos()

    @work(group="sync-all")
    async def sync_all_repos(self) -> None:
        rows = [row for row in self.rows.values() if not self._is_syncing(row)]
        for row in rows:
            row.busy = SYNCING
            self.render_row(row.name)
        self.notify(f"Syncing {len(rows)} repositories...")
        self.query_one(Header).loading = True

        def on_result(name: str, state: Optional[SyncState], error: Optional[Exception]) -> None:
            row = self.rows.get(name)
            if row is None:
                return
            row.busy = ""
            if error is not None:
                row.error = str(error)
            else:
                row.state = state
                row.error = ""
            self.render_row(name)

        try:
            report = await self.git.sync_all([row.ref for row in rows], on_result=on_result)
        finally:
            self._sync_all_running = False
            header = self._try_query_one(Header, Header)
            if header is not None:
                header.loading = False
            # Rows without a result were interrupted; their state is unknown.
            for row in rows:
                if row.busy == SYNCING:
                    row.busy = ""
                    row.state = None
                    self.render_row(row.name)
        if report.failed:
            self.notify(
                f"Synced {len(report.succeeded)} repositories, {len(report.failed)} failed",
                severity="warning",
            )
        else:
            self.notify(f"Synced {len(report.succeeded)} repositories")

    def action_add(self) -> None:
        def on_submit(url: Optional[str]) -> None:
            if url:
                self.run_worker(self.add_repo(url), group="registry-add")
        self.push_screen(
            InputScreen(
                "Add Repository",
                placeholder="https://github.com/user/repo.git",
                validate=validate_github_url,
                hint="Press Enter to add, Escape to cancel",
            ),
            on_submit,
        )

    async def add_repo(self, url: str) -> None:
        try:
            name = parse_github_url(url).repo
            already_tracked = name in self.rows and self.rows[name].ref.url == url.strip()
            data = self.registry.add_repo(url)
        except LazyContextError as exc:
            self.notify(f"Failed to add repository: {exc}", severity="error")
            return
        self.set_rows(data.repos)
        if already_tracked:
            self.notify(f"{name} is already tracked", severity="information")
            return
        self.notify(f"Added {name}")
        if self.config.clone_on_add:
            await self.sync_repo(name)
        else:
            await self.check_repo(name)

    def action_remove(self) -> None:
        row = self._selected_row()
        if row is None:
            return
        name = row.name

        def on_confirm(confirm: Optional[bool]) -> None:
            if not confirm:
                return
            try:
                data = self.registry.remove_repo(name)
            except LazyContextError as exc:
                self.notify(f"Failed to remove {name}: {exc}", severity="error")
                return
            self.set_rows(data.repos)
            self.notify(f"Removed {name}")

        self.push_screen(
            ConfirmScreen(
                f"Stop tracking this repository?\n\nName: {name}\nURL: {row.ref.url}\n\nThe working copy is left on disk."
            ),
            on_confirm,
        )

    def action_fetch(self) -> None:
        row = self._selected_row()
        if row is None:
            return
        if self._is_syncing(row):
            self.notify(f"{row.name} is already syncing", severity="warning")
            return
        self.run_worker(self.fetch_repo(row.name), group="sync")

    async def fetch_repo(self, name: str) -> None:
        row = self.rows.get(name)
        if row is None:
            return
        row.busy = LOADING
        self.render_row(name)
        try:
            await self.git.fetch(row.ref)
        except LazyContextError as exc:
            row.busy = ""
            row.error = str(exc)
            self.render_row(name)
            self.notify(f"Failed to fetch {name}: {exc}", severity="error")
            return
        await self.check_repo(name)

    def action_refresh(self) -> None:
        self.load_registry()

    def action_toggle_console(self) -> None:
        log_pane = self.query_one("#log-pane", RichLog)
        visible = log_pane.styles.display != "none"
        log_pane.styles.display = "none" if visible else "block"
        if visible:
            self.query_one("#repo-table", DataTable).focus()

    def action_help(self) -> None:
        self.push_screen(HelpScreen())

from typing import Callable, Optional

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    Input,
    Label,
    Markdown,
    RichLog,
)

Validator = Callable[[str], Optional[str]]


class ConfirmScreen(ModalScreen[bool]):
    CSS = """
    ConfirmScreen {
        align: center middle;
    }
    #dialog {
        grid-size: 2;
        grid-gutter: 1 2;
        grid-rows: 1fr 3;
        padding: 0 1;
        width: 60;
        height: 11;
        border: thick $background 80%;
        background: $surface;
    }
    #question {
        column-span: 2;
        height: 1fr;
        content-align: center middle;
    }
    Button {
        width: 100%;
    }
    """
    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, message: str):
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Container(id="dialog"):
            yield Label(self.message, id="question")
            yield Button("Cancel", variant="primary", id="cancel")
            yield Button("Confirm", variant="error", id="confirm")

    @on(Button.Pressed, "#cancel")
    def action_cancel(self):
        self.dismiss(False)

    @on(Button.Pressed, "#confirm")
    def confirm(self):
        self.dismiss(True)


class InputScreen(ModalScreen[Optional[str]]):
    """Single-line prompt. A validator may reject the value and keep the dialog open."""

    CSS = """
    InputScreen {
        align: center middle;
    }
    #dialog {
        width: 70;
        height: auto;
        border: thick $background 80%;
        background: $surface;
        padding: 1 2;
    }
    Label {
        margin-bottom: 1;
    }
    #input-error {
        color: $error;
        margin-top: 1;
        margin-bottom: 0;
    }
    #input-hint {
        color: $text-muted;
        margin-top: 1;
        margin-bottom: 0;
    }
    """

    def __init__(
        self,
        prompt: str,
        placeholder: str = "",
        validate: Optional[Validator] = None,
        hint: str = "Press Enter to confirm, Escape to cancel",
    ):
        super().__init__()
        self.prompt = prompt
        self.placeholder = placeholder
        self._validate = validate
        self._hint = hint
        self.error = ""

    def compose(self) -> ComposeResult:
        with Container(id="dialog"):
            yield Label(self.prompt)
            yield Input(placeholder=self.placeholder, id="input-value")
            yield Label("", id="input-error")
            yield Label(self._hint, id="input-hint")

    @on(Input.Submitted)
    def submit(self, event: Input.Submitted):
        value = event.value.strip()
        if not value:
            return
        if self._validate is not None:
            self.error = self._validate(value) or ""
            if self.error:
                self.query_one("#input-error", Label).update(self.error)
                return
        self.dismiss(value)

    @on(Input.Changed)
    def clear_error(self, event: Input.Changed):
        self.error = ""
        self.query_one("#input-error", Label).update("")

    def on_key(self, event):
        if event.key == "escape":
            event.stop()
            self.dismiss(None)


class HelpScreen(ModalScreen):
    CSS = """
    HelpScreen {
        align: center middle;
    }
    #help-container {
        width: 80;
        height: 80%;
        border: thick $primary;
        background: $surface;
        padding: 1 2;
    }
    """
    BINDINGS = [("escape", "dismiss", "Close")]

    def compose(self) -> ComposeResult:
        help_text = """
# LazyContext Help

**Navigation**
- `j` / `Down`: Move cursor down
- `k` / `Up`: Move cursor up
- `` ` ``: Toggle the command log console
- `Ctrl+/`: Open command palette

**Actions**
- `Enter`: Sync selected repository (clone if missing, pull otherwise)
- `s`: Sync all repositories
- `a`: Add a repository by GitHub URL
- `x`: Remove selected repository from the registry
- `f`: Fetch selected repository and re-check it
- `r`: Re-check every repository
- `?`: Show this help
- `q`: Quit

**Status Indicators**
- `✓ up to date`: Clean and level with upstream
- `… N behind`: Clean, N commits to pull
- `… modified`: Uncommitted or untracked changes
- `✗ missing`: Not cloned yet
- `! error`: The last check or sync failed; see the command log

Working copies live under the target directory (default `.context`).
Removing a repository only edits the registry; the clone stays on disk.
        """
        with Container(id="help-container"):
            yield Markdown(help_text)
            yield Button("Close", variant="primary", id="close")

    @on(Button.Pressed, "#close")
    def action_dismiss(self):
        self.dismiss()


class FocusableRichLog(RichLog):
    can_focus = True

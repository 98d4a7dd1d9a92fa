from typing import Optional


class LazyContextError(Exception):
    """Base class for failures raised at a repository or registry boundary."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(LazyContextError):
    pass


class ConfigError(LazyContextError):
    pass


class GitError(LazyContextError):
    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        operation: str = "",
        target: str = "",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.operation = operation
        self.target = target

    def __str__(self) -> str:
        if self.exit_code is None:
            return self.message
        return f"{self.message} (exit {self.exit_code})"


class ProcessLaunchError(LazyContextError):
    """The command could not be started at all."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Failed to run command: {command}: {reason}")
        self.command = command
        self.reason = reason

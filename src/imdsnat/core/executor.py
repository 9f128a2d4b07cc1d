"""Command execution with dry-run support.

Provides:
- Safe command execution with combined output capture
- Dry-run mode support
- Executable lookup on PATH
"""

import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

from imdsnat.core.context import ExecutionContext
from imdsnat.core.exceptions import ExecutionError, ToolUnavailableError


@dataclass
class CommandResult:
    """Result of a command execution.

    stdout and stderr are captured together, in the order the tool wrote
    them, into ``output``.
    """
    command: list[str]
    return_code: int
    output: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0


class CommandExecutor:
    """Safe command execution with dry-run support and output capture.

    Features:
    - Dry-run mode shows what would happen
    - Combined stdout/stderr capture for diagnostics matching
    - Optional timeout (default: wait indefinitely)
    """

    def __init__(self, ctx: ExecutionContext, *, timeout: Optional[int] = None) -> None:
        """Initialize executor with context.

        Args:
            ctx: Execution context with flags
            timeout: Default command timeout in seconds (None waits forever)
        """
        self.ctx = ctx
        self.timeout = timeout

    def which(self, name: str) -> Optional[str]:
        """Locate an executable on PATH.

        Args:
            name: Executable name

        Returns:
            Full path, or None if not found
        """
        return shutil.which(name)

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        mutating: bool = True,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Execute a command safely.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            check: Raise exception on non-zero exit
            mutating: Command changes host state (skipped in dry-run)
            timeout: Command timeout in seconds, overriding the default

        Returns:
            CommandResult with output

        Raises:
            ExecutionError: If command fails and check=True, or times out
            ToolUnavailableError: If the executable cannot be started
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = shlex.join(command)
        self.ctx.console.debug(f"Running: {cmd_display}")

        if self.ctx.dry_run and mutating:
            self.ctx.console.dry_run_msg(f"Run: {cmd_display}")
            return CommandResult(command=command, return_code=0, output="")

        timeout = timeout if timeout is not None else self.timeout

        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or cmd_display}",
                command=cmd_display,
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(command[0], details=[str(e)]) from e

        cmd_result = CommandResult(
            command=command,
            return_code=result.returncode,
            output=result.stdout or "",
        )
        self.ctx.console.debug(f"Exit code {result.returncode}: {cmd_display}")

        if check and result.returncode != 0:
            raise ExecutionError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=result.returncode,
                output=cmd_result.output,
            )

        return cmd_result

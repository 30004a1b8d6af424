"""
Structured host command execution.
Commands are passed as argument lists, never interpolated into a shell string.
"""

import subprocess
from typing import Optional, Sequence

from core.exceptions import CommandError
from core.logging_config import LoggerMixin
from core.types import CommandResult

DEFAULT_COMMAND_TIMEOUT = 10


class CommandRunner(LoggerMixin):
    """Runs host commands and returns a CommandResult.

    Raises CommandError only when the command could not run at all
    (binary missing, permission denied, timeout). A non-zero exit code is
    reported through CommandResult.return_code.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT):
        self.timeout = timeout

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        args = [str(a) for a in args]
        effective_timeout = self.timeout if timeout is None else timeout
        self.logger.debug("Running command", command=args, timeout=effective_timeout)
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
                check=False,
            )
        except FileNotFoundError:
            raise CommandError(args, "executable not found")
        except PermissionError as e:
            raise CommandError(args, f"permission denied: {e}")
        except subprocess.TimeoutExpired:
            raise CommandError(args, f"timed out after {effective_timeout}s")
        except OSError as e:
            raise CommandError(args, str(e))

        result = CommandResult(
            args=tuple(args),
            return_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if not result.success:
            self.logger.debug(
                "Command returned non-zero",
                command=args,
                return_code=result.return_code,
                stderr=result.stderr.strip(),
            )
        return result

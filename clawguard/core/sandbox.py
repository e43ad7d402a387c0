"""
Command Sandbox - Guarded process execution for tool executors.

Tools that need to shell out go through here. Two layers:
1. Allowlist of program names (read-only inspection tools)
2. Blocked argument patterns, checked even for allowed programs

Programs are spawned directly with an argument vector, never through a shell.
Every outcome (blocked, failed, timed out) comes back as text so the calling
agent can keep talking.
"""

import asyncio
import logging
import re
from typing import Iterable, Optional, Pattern, Sequence, Tuple

logger = logging.getLogger(__name__)

BLOCKED_PREFIX = "BLOCKED:"

DEFAULT_MAX_BYTES = 10240
DEFAULT_TIMEOUT_SECONDS = 30.0

ALLOWED_COMMANDS = frozenset(
    {
        # Process observation
        "ps",
        "pgrep",
        "pidof",
        # System resources
        "free",
        "df",
        "du",
        "lsblk",
        "lscpu",
        "lsmem",
        # Network
        "ss",
        "ip",
        # Services
        "systemctl",
        "journalctl",
        # Files (read-only)
        "ls",
        "cat",
        "head",
        "tail",
        "wc",
        "file",
        "stat",
        "find",
        "realpath",
        # System info
        "uptime",
        "hostname",
        "uname",
        "who",
        "w",
        "last",
        "date",
        # Nix (read-only)
        "nix",
        "nix-store",
        "nixos-option",
        "nixos-version",
        "nixos-rebuild",
        # Dev (read-only)
        "git",
        # Hardware
        "sensors",
        "lsusb",
        "lspci",
    }
)

BLOCKED_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"[;&|`\n]"),  # Shell metacharacters
    re.compile(r"\$\("),  # Command substitution
    re.compile(r"\$\{"),  # Variable substitution
    re.compile(r">\s*[^\s]"),  # Output redirection
    re.compile(r"--delete"),
    re.compile(r"--force"),
    re.compile(r"-rf\b"),
    re.compile(r"--hard"),
    re.compile(r"--no-verify"),
    re.compile(r"-exec\b"),  # find -exec runs arbitrary programs
    re.compile(r"nixos-rebuild\s+(switch|boot|test)"),
    re.compile(r"nix-collect-garbage"),
    re.compile(r"\bpush\b"),  # git push
)


def _truncate(output: str, max_bytes: int) -> str:
    """Cut output to max_bytes (UTF-8) and append a truncation notice."""
    encoded = output.encode("utf-8")
    if len(encoded) <= max_bytes:
        return output
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return head + f"\n... (truncated at {max_bytes} bytes)"


async def _drain(stream: asyncio.StreamReader, buf: bytearray, limit: int):
    """Read a pipe to EOF, keeping at most limit bytes."""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        if len(buf) < limit:
            buf.extend(chunk[: limit - len(buf)])


class CommandSandbox:
    """
    Allowlist + blocklist gate around subprocess execution.

    Has no knowledge of tool policies or approvals; it is the narrow
    safety net underneath them.
    """

    def __init__(
        self,
        allowed_commands: Optional[Iterable[str]] = None,
        blocked_patterns: Optional[Sequence[Pattern[str]]] = None,
    ):
        self.allowed_commands = frozenset(
            ALLOWED_COMMANDS if allowed_commands is None else allowed_commands
        )
        self.blocked_patterns = tuple(
            BLOCKED_PATTERNS if blocked_patterns is None else blocked_patterns
        )

    def is_command_allowed(self, command: str, args: Sequence[str]) -> bool:
        """Check a program and its arguments against allowlist and blocklist."""
        if command not in self.allowed_commands:
            return False

        # Program name included so subcommand patterns (nixos-rebuild switch) match
        command_line = " ".join([command, *args])
        for pattern in self.blocked_patterns:
            if pattern.search(command_line):
                return False
        return True

    async def safe_exec(
        self,
        command: str,
        args: Sequence[str],
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cwd: Optional[str] = None,
    ) -> str:
        """
        Run an allowed program and return its combined output as text.

        Args:
            command: Program name (looked up on PATH, no shell)
            args: Argument vector
            max_bytes: Output cap; longer output is truncated with a notice
            timeout: Wall-clock limit in seconds
            cwd: Working directory

        Returns:
            Output text, a "BLOCKED:" sentinel, or an "Error:" description.
            Never raises for blocked or failed commands.
        """
        args = [str(a) for a in args]

        if not self.is_command_allowed(command, args):
            logger.warning(f"Blocked command: {command} {' '.join(args)}")
            return (
                f'{BLOCKED_PREFIX} Command "{command} {" ".join(args)}" '
                "is not permitted."
            )

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Failed to spawn {command}: {e}")
            return _truncate(f"Error: {e}", max_bytes)

        # Chunks land in our buffers as they arrive, so a timeout keeps
        # everything read so far.
        stdout_buf = bytearray()
        stderr_buf = bytearray()
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _drain(process.stdout, stdout_buf, max_bytes + 1),
                    _drain(process.stderr, stderr_buf, max_bytes + 1),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            stdout_raw, stderr_raw = bytes(stdout_buf), bytes(stderr_buf)
            logger.warning(f"Command timed out after {timeout}s: {command}")
            return _truncate(
                self._format_error(
                    f"Command timed out after {timeout}s", stdout_raw, stderr_raw
                ),
                max_bytes,
            )

        stdout_raw, stderr_raw = bytes(stdout_buf), bytes(stderr_buf)
        if process.returncode != 0:
            logger.debug(f"{command} exited with status {process.returncode}")
            return _truncate(
                self._format_error(
                    f"Command failed: {command} {' '.join(args)} "
                    f"(exit status {process.returncode})",
                    stdout_raw,
                    stderr_raw,
                ),
                max_bytes,
            )

        stdout = stdout_raw.decode("utf-8", errors="replace")
        stderr = stderr_raw.decode("utf-8", errors="replace")
        output = stdout + (f"\nSTDERR: {stderr}" if stderr else "")
        return _truncate(output, max_bytes)

    @staticmethod
    def _format_error(message: str, stdout_raw: bytes, stderr_raw: bytes) -> str:
        stdout = (stdout_raw or b"").decode("utf-8", errors="replace")
        stderr = (stderr_raw or b"").decode("utf-8", errors="replace")
        return f"Error: {message}\n{stdout}\n{stderr}".strip()


_sandbox: Optional[CommandSandbox] = None


def get_sandbox() -> CommandSandbox:
    """Get the default sandbox instance."""
    global _sandbox
    if _sandbox is None:
        _sandbox = CommandSandbox()
    return _sandbox


def is_command_allowed(command: str, args: Sequence[str]) -> bool:
    return get_sandbox().is_command_allowed(command, args)


async def safe_exec(
    command: str,
    args: Sequence[str],
    max_bytes: int = DEFAULT_MAX_BYTES,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    cwd: Optional[str] = None,
) -> str:
    return await get_sandbox().safe_exec(
        command, args, max_bytes=max_bytes, timeout=timeout, cwd=cwd
    )

"""Shell command execution helper."""

import asyncio
import logging
import shlex

logger = logging.getLogger(__name__)


def format_cmd(command):
    """Render an argument list as a copy-pasteable shell line."""
    return " ".join(shlex.quote(arg) for arg in command)


async def run_shell_cmd(command, dry_run=False, timeout=600, input=None):
    """Run a command and return (returncode, stdout, stderr).

    Args:
        command: list of command arguments
        dry_run: if True, log the command instead of executing
        timeout: maximum seconds to wait for the command
        input: optional text written to the command's stdin

    Returns:
        (returncode, stdout, stderr) tuple
    """
    if dry_run:
        logger.info(f"[dry-run] {format_cmd(command)}")
        return 0, "", ""

    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error(f"Error: '{command[0]}' not found. Is it installed and on PATH?")
        return 1, "", f"'{command[0]}' not found"

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(input.encode() if input is not None else None),
            timeout=timeout,
        )
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {format_cmd(command)}")
        proc.kill()
        await proc.wait()
        return 1, "", f"timed out after {timeout}s"

    stdout = stdout_bytes.decode() if stdout_bytes else ""
    stderr = stderr_bytes.decode() if stderr_bytes else ""
    return proc.returncode, stdout, stderr

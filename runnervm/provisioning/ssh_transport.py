"""SSH transport: run command batches on a provisioned VM."""

import asyncio
import collections
import logging
import os
import re

from runnervm.provisioning.errors import ConnectionFailed, RemoteCommandFailed
from runnervm.provisioning.interfaces import RemoteSession, SecretStore
from runnervm.provisioning.shell import format_cmd, run_shell_cmd
from runnervm.provisioning.types import ExitStatus, RemoteCommandBatch

logger = logging.getLogger(__name__)

FAILURE_MARKER = "__RUNNERVM_FAILED__"
SSH_CONNECTION_ERROR = 255  # ssh's own exit status for connection/auth errors
OUTPUT_TAIL_LINES = 50
TIMEOUT_STATUS = 124  # same as coreutils timeout(1)

_FAILURE_RE = re.compile(rf"^{FAILURE_MARKER} (\d+) (\d+)$")


def ssh_base_args(server, ssh_key, ssh_port=22, connect_timeout=None):
    """Build base SSH arguments.

    Host keys are accepted on first use and checked afterwards, so a stale
    entry must be removed with ``ssh-keygen -R`` before connecting to a
    reused address.
    """
    args = [
        "ssh",
        "-o", "StrictHostKeyChecking=accept-new",
        "-o", "BatchMode=yes",
        "-o", "ServerAliveInterval=60",
        "-o", "ServerAliveCountMax=5",
    ]
    if connect_timeout:
        args += ["-o", f"ConnectTimeout={connect_timeout}"]
    if ssh_key:
        args += ["-i", ssh_key]
    if ssh_port and ssh_port != 22:
        args += ["-p", str(ssh_port)]
    args.append(server)
    return args


def _ssh_keygen_remove_cmd(address):
    return ["ssh-keygen", "-R", address]


def render_batch_script(batch: RemoteCommandBatch) -> str:
    """Render a batch into one bash script.

    Commands share the shell, so ``cd`` and ``export`` carry over. Each
    command's stdin is /dev/null, since the shell itself reads the script
    from stdin. The first non-zero command prints the failure marker to
    stderr and exits with its status.
    """
    lines = [f"# runnervm batch: {batch.name}"]
    for index, command in enumerate(batch.commands):
        lines += [
            "{",
            command,
            # Commands must not read the rest of the script from stdin
            "} < /dev/null",
            f'__rc=$?; if [ "$__rc" -ne 0 ]; then echo "{FAILURE_MARKER} {index} $__rc" >&2; exit "$__rc"; fi',
        ]
    lines.append("exit 0")
    return "\n".join(lines) + "\n"


def parse_failure_marker(lines):
    """Return (index, status) from the last failure marker in *lines*, or None."""
    for line in reversed(list(lines)):
        m = _FAILURE_RE.match(line.strip())
        if m:
            return int(m.group(1)), int(m.group(2))
    return None


def normalize_private_key(value):
    """Rebuild a PEM key whose newlines were flattened to spaces.

    Secret stores often hand the key back on a single line. Header and footer
    go on their own lines and the base64 body is split on whitespace.
    """
    value = value.strip()
    m = re.match(r"^(-----BEGIN [^-]+-----)(.*?)(-----END [^-]+-----)$", value, re.DOTALL)
    if not m:
        return value if value.endswith("\n") else value + "\n"
    header, body, footer = m.groups()
    return "\n".join([header, *body.split(), footer]) + "\n"


def write_private_key(path, value):
    """Write a key file readable only by the current user."""
    path = os.path.expanduser(path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(normalize_private_key(value))
    return path


class SshRemoteSession(RemoteSession):
    """RemoteSession over the system ssh client.

    The private key named by ``credential_ref`` is fetched from the secret
    store on first use and written to ``key_path``. The file is left in place
    for later batches; removing it is the CleanupGuard's job.

    No retries: a failed connection surfaces as ConnectionFailed.
    """

    def __init__(self, secret_store: SecretStore, username, key_path, ssh_port=22, timeout=7200, dry_run=False):
        self.secret_store = secret_store
        self.username = username
        self.key_path = os.path.expanduser(key_path)
        self.ssh_port = ssh_port
        self.timeout = timeout
        self.dry_run = dry_run

    async def reset_trust(self, address):
        logger.info(f"Removing old host key for {address}")
        rc, _, stderr = await run_shell_cmd(_ssh_keygen_remove_cmd(address), dry_run=self.dry_run)
        # ssh-keygen -R exits non-zero when there is no known_hosts file yet
        if rc != 0:
            logger.debug(f"ssh-keygen -R {address}: {stderr.strip()}")

    async def ensure_key(self, credential_ref):
        if self.dry_run or os.path.exists(self.key_path):
            return self.key_path
        value = await self.secret_store.get_secret(credential_ref)
        return write_private_key(self.key_path, value)

    def _server(self, address):
        return f"{self.username}@{address}" if self.username else address

    async def run(self, address, credential_ref, batch):
        server = self._server(address)
        key_path = await self.ensure_key(credential_ref)
        args = ssh_base_args(server, key_path, self.ssh_port) + ["bash", "-s"]
        script = render_batch_script(batch)

        logger.info(f"Running '{batch.name}' ({len(batch.commands)} commands) on {server}")
        if self.dry_run:
            logger.info(f"[dry-run] {format_cmd(args)} <<EOF")
            for command in batch.commands:
                logger.info(f"[dry-run]   {command}")
            logger.info("[dry-run] EOF")
            return ExitStatus(exit_code=0)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ConnectionFailed("'ssh' not found. Is it installed and on PATH?") from e

        tail = collections.deque(maxlen=OUTPUT_TAIL_LINES)
        markers = []
        feed_errors = []

        async def _read_stream(pipe, level, keep=None):
            async for raw_line in pipe:
                line = raw_line.decode(errors="replace").rstrip("\n")
                if keep is not None and _FAILURE_RE.match(line):
                    keep.append(line)
                    continue
                logger.log(level, line)
                tail.append(line)

        async def _feed():
            try:
                proc.stdin.write(script.encode())
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError) as e:
                # The remote shell went away before reading the whole script
                logger.debug(f"Writing batch '{batch.name}' to {server} failed: {e}")
                feed_errors.append(e)

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _feed(),
                    _read_stream(proc.stdout, logging.INFO),
                    _read_stream(proc.stderr, logging.WARNING, markers),
                    proc.wait(),
                ),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.error(f"Batch '{batch.name}' timed out after {self.timeout}s on {server}")
            proc.kill()
            await proc.wait()
            raise RemoteCommandFailed(TIMEOUT_STATUS, output="\n".join(tail)) from None
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        output = "\n".join(tail)
        rc = proc.returncode
        failure = parse_failure_marker(markers)
        if failure is None and feed_errors:
            raise ConnectionFailed(f"ssh to {server} closed before the batch was sent (exit {rc})")
        if rc == 0:
            return ExitStatus(exit_code=0, output=output)

        if failure is not None:
            index, status = failure
            raise RemoteCommandFailed(status, command=batch.commands[index], index=index, output=output)
        if rc == SSH_CONNECTION_ERROR:
            raise ConnectionFailed(f"ssh to {server} failed: {output or 'no output'}")
        raise RemoteCommandFailed(rc, output=output)

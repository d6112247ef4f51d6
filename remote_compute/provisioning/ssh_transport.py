"""SSH transport: run commands and copy files on droplets via ssh/scp.

The decrypted private key only ever touches disk as a 0600 temp file that
lives for the duration of a single ssh/scp invocation.
"""

import asyncio
import contextlib
import logging
import os
import shlex
import tempfile
import time

from remote_compute.errors import TransportError
from remote_compute.presets import SSH_USERNAME
from remote_compute.provisioning.types import ExecResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
MAX_OUTPUT_BYTES = 1_048_576
_READ_CHUNK_BYTES = 65_536

_COMMON_OPTIONS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "BatchMode=yes",
    "-o", "PasswordAuthentication=no",
    "-o", "IdentitiesOnly=yes",
    "-o", "LogLevel=ERROR",
    "-o", "ServerAliveInterval=10",
    "-o", "ServerAliveCountMax=5",
]


def ssh_base_args(server, ssh_key, ssh_port=22, connect_timeout=None):
    """Build base SSH arguments (key-only auth, no host key pinning)."""
    args = ["ssh", *_COMMON_OPTIONS]
    if connect_timeout:
        args += ["-o", f"ConnectTimeout={connect_timeout}"]
    args += ["-i", ssh_key]
    if ssh_port and ssh_port != 22:
        args += ["-p", str(ssh_port)]
    args.append(server)
    return args


def scp_base_args(ssh_key, ssh_port=22):
    """Build base SCP arguments."""
    args = ["scp", "-q", *_COMMON_OPTIONS, "-i", ssh_key]
    if ssh_port and ssh_port != 22:
        args += ["-P", str(ssh_port)]
    return args


@contextlib.contextmanager
def private_key_file(private_key):
    """Materialize *private_key* as a 0600 temp file, then overwrite and remove it."""
    fd, path = tempfile.mkstemp(prefix="rc-key-")
    try:
        os.chmod(path, 0o600)
        data = private_key if private_key.endswith("\n") else private_key + "\n"
        with os.fdopen(fd, "w") as f:
            f.write(data)
        yield path
    finally:
        try:
            size = os.path.getsize(path)
            with open(path, "r+b") as f:
                f.write(b"\0" * size)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.warning(f"Could not scrub temp key file {path}: {e}")
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)


def wrap_command(command, working_dir=None):
    """Prefix *command* with a ``cd`` into *working_dir* when given."""
    if working_dir:
        return f"cd -- {shlex.quote(working_dir)} && {command}"
    return command


def _truncate(data: bytes, limit: int) -> str:
    return data[:limit].decode(errors="replace")


@contextlib.contextmanager
def _local_io(action):
    """Re-raise local OSErrors (missing client binary, unwritable temp dir) as TransportError."""
    try:
        yield
    except OSError as e:
        raise TransportError(f"{action} failed locally: {e}") from e


async def _read_capped(stream, limit=None):
    """Drain *stream* to EOF, keeping at most *limit* bytes."""
    kept = bytearray()
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return bytes(kept)
        if limit is None:
            kept += chunk
        elif len(kept) < limit:
            kept += chunk[: limit - len(kept)]


async def _communicate(args, timeout, limit=None):
    """Run *args*, returning (returncode, stdout_bytes, stderr_bytes, timed_out).

    stdout and stderr are read incrementally; anything past *limit* bytes is
    read and dropped so the child never blocks on a full pipe.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TransportError(f"Could not start {args[0]}: {e}") from e
    try:
        stdout_bytes, stderr_bytes, _ = await asyncio.wait_for(
            asyncio.gather(_read_capped(proc.stdout, limit), _read_capped(proc.stderr, limit), proc.wait()),
            timeout=timeout,
        )
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        return TIMEOUT_EXIT_CODE, b"", b"", True
    return proc.returncode, stdout_bytes, stderr_bytes, False


class SshTransport:
    """Executes commands and moves files on a droplet over SSH.

    Every call opens its own session; nothing is pooled between calls.
    Failing to run the local ssh/scp client raises TransportError.
    """

    def __init__(self, username=SSH_USERNAME, port=22, max_output=MAX_OUTPUT_BYTES):
        self.username = username
        self.port = port
        self.max_output = max_output

    def _address(self, host):
        return f"{self.username}@{host}" if self.username else host

    async def run(self, host, private_key, command, timeout_ms=300_000, working_dir=None, connect_timeout=15) -> ExecResult:
        """Run *command* on *host*.

        A command that outlives *timeout_ms* is killed and reported with exit
        code 124. stdout/stderr are each capped at ``max_output`` bytes.
        """
        timeout = timeout_ms / 1000
        full_cmd = wrap_command(command, working_dir)
        start = time.monotonic()
        with _local_io("ssh"), private_key_file(private_key) as key_path:
            args = ssh_base_args(self._address(host), key_path, self.port, connect_timeout=connect_timeout)
            args.append(full_cmd)
            rc, out, err, timed_out = await _communicate(args, timeout, limit=self.max_output)
        duration_ms = int((time.monotonic() - start) * 1000)

        if timed_out:
            logger.error(f"Command timed out after {timeout_ms}ms on {host}: {command}")
            return ExecResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {timeout_ms}ms",
                duration_ms=duration_ms,
            )
        return ExecResult(
            exit_code=rc,
            stdout=_truncate(out, self.max_output),
            stderr=_truncate(err, self.max_output),
            duration_ms=duration_ms,
        )

    async def push(self, host, private_key, content, remote_path, timeout=30):
        """Copy *content* (str or bytes) to *remote_path* via SCP.

        Returns:
            (returncode, stderr) tuple.
        """
        data = content.encode() if isinstance(content, str) else content
        with _local_io("scp push"):
            fd, local_path = tempfile.mkstemp(prefix="rc-push-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                with private_key_file(private_key) as key_path:
                    args = scp_base_args(key_path, self.port) + [local_path, f"{self._address(host)}:{remote_path}"]
                    rc, _, err, timed_out = await _communicate(args, timeout, limit=self.max_output)
            finally:
                os.unlink(local_path)

        if timed_out:
            logger.error(f"SCP timed out after {timeout}s: -> {host}:{remote_path}")
            return 1, "timeout"
        return rc, err.decode(errors="replace").strip()

    async def pull(self, host, private_key, remote_path, timeout=30):
        """Copy *remote_path* from *host* via SCP.

        Returns:
            (returncode, data, stderr) tuple; data is the file's raw bytes,
            or None on failure.
        """
        with _local_io("scp pull"):
            fd, local_path = tempfile.mkstemp(prefix="rc-pull-")
            os.close(fd)
            try:
                with private_key_file(private_key) as key_path:
                    args = scp_base_args(key_path, self.port) + [f"{self._address(host)}:{remote_path}", local_path]
                    rc, _, err, timed_out = await _communicate(args, timeout, limit=self.max_output)
                if timed_out:
                    logger.error(f"SCP timed out after {timeout}s: {host}:{remote_path} ->")
                    return 1, None, "timeout"
                if rc != 0:
                    return rc, None, err.decode(errors="replace").strip()
                with open(local_path, "rb") as f:
                    return 0, f.read(), ""
            finally:
                os.unlink(local_path)

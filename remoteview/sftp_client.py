"""
SFTP transport using paramiko.

SFTPClient is the blocking connection wrapper (reconnect, retry, error
translation). SFTPRemoteClient adapts it to the async RemoteClient protocol
by running each call in a worker thread.
"""

import asyncio
import logging
import os
import stat
import threading
import time
from pathlib import Path

import paramiko

from .config import ConnectionConfig, SSHConfig
from .entry import RemoteEntry
from .paths import ROOT, normalize_path
from .remote_client import ReadResult

logger = logging.getLogger(__name__)


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Trust-on-first-use host key policy (same model as OpenSSH).

    - Unknown host: accept and save key to ~/.ssh/known_hosts
    - Known host, same key: accept
    - Known host, CHANGED key: reject (possible MITM attack)
    """

    def __init__(self, known_hosts_path: Path | None = None):
        self._known_hosts_path = known_hosts_path or Path.home() / ".ssh" / "known_hosts"

    def missing_host_key(self, client, hostname, key):
        host_keys = client.get_host_keys()
        existing = host_keys.lookup(hostname)

        if existing is not None:
            existing_key = existing.get(key.get_name())
            if existing_key is not None and existing_key != key:
                raise paramiko.SSHException(
                    f"Host key for {hostname} has CHANGED. "
                    f"Remove the old entry from {self._known_hosts_path} "
                    f"if the server key was legitimately changed."
                )

        logger.info("Adding host key for %s to known_hosts", hostname)
        host_keys.add(hostname, key.get_name(), key)

        try:
            self._known_hosts_path.parent.mkdir(parents=True, exist_ok=True)
            host_keys.save(str(self._known_hosts_path))
        except OSError as e:
            logger.warning("Could not save known_hosts: %s", e)


def translate_io_error(error: IOError, path: str) -> Exception:
    """Translate an SFTP IOError to a standard Python exception."""
    errno = getattr(error, "errno", None)
    if errno == 2:  # ENOENT
        return FileNotFoundError(f"No such file or directory: {path}")
    if errno == 13:  # EACCES
        return PermissionError(f"Permission denied: {path}")
    if errno == 20:  # ENOTDIR
        return NotADirectoryError(f"Not a directory: {path}")
    return OSError(str(error))


class SFTPClient:
    """
    Blocking wrapper around paramiko's SSH/SFTP with connection management
    and retry logic. Paths are relative to ssh_config.root_path.
    """

    def __init__(self, ssh_config: SSHConfig, conn_config: ConnectionConfig):
        self.ssh_config = ssh_config
        self.conn_config = conn_config
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._lock = threading.Lock()
        self._connected = False

    def connect(self) -> None:
        """Establish SSH connection and open SFTP session."""
        with self._lock:
            self._connect_internal()

    def _connect_internal(self) -> None:
        """Caller must hold the lock."""
        try:
            self._ssh = paramiko.SSHClient()
            self._ssh.load_system_host_keys()
            try:
                self._ssh.load_host_keys(str(Path.home() / ".ssh" / "known_hosts"))
            except FileNotFoundError:
                pass
            self._ssh.set_missing_host_key_policy(TrustOnFirstUsePolicy())

            connect_kwargs: dict = {
                "hostname": self.ssh_config.host,
                "port": self.ssh_config.port,
                "timeout": self.conn_config.timeout_seconds,
                "allow_agent": self.ssh_config.use_agent,
            }
            if self.ssh_config.username:
                connect_kwargs["username"] = self.ssh_config.username

            # Auth priority: key file -> password -> agent/default keys
            if self.ssh_config.key_file:
                connect_kwargs["key_filename"] = os.path.expanduser(self.ssh_config.key_file)
                if self.ssh_config.key_passphrase:
                    connect_kwargs["passphrase"] = self.ssh_config.key_passphrase
                connect_kwargs["look_for_keys"] = True
                auth = "key file"
            elif self.ssh_config.password:
                connect_kwargs["password"] = self.ssh_config.password
                connect_kwargs["look_for_keys"] = False
                auth = "password"
            else:
                connect_kwargs["look_for_keys"] = True
                auth = "agent/default keys"

            logger.debug(
                "Connecting to SSH %s:%d with %s",
                self.ssh_config.host,
                self.ssh_config.port,
                auth,
            )
            self._ssh.connect(**connect_kwargs)
            self._sftp = self._ssh.open_sftp()
            self._connected = True
            logger.info(
                "Connected to SSH server %s:%d (root %s)",
                self.ssh_config.host,
                self.ssh_config.port,
                self.ssh_config.root_path,
            )

        except paramiko.AuthenticationException as e:
            self._fail_connect()
            logger.error("SSH authentication failed: %s", e)
            raise PermissionError(f"SSH authentication failed: {e}") from e
        except TimeoutError as e:
            self._fail_connect()
            logger.error("SSH connection timeout: %s", e)
            raise TimeoutError(f"SSH connection timeout: {e}") from e
        except OSError as e:
            self._fail_connect()
            logger.error("SSH connection failed: %s", e)
            raise ConnectionError(f"SSH connection failed: {e}") from e
        except paramiko.SSHException as e:
            self._fail_connect()
            logger.error("SSH error: %s", e)
            raise ConnectionError(f"SSH error: {e}") from e

    def _fail_connect(self) -> None:
        self._connected = False
        self._cleanup_connections()

    def _cleanup_connections(self) -> None:
        """Close SFTP and SSH, logging rather than raising close errors."""
        if self._sftp:
            try:
                self._sftp.close()
            except Exception as e:
                logger.debug("Error closing SFTP session: %s", e)
            self._sftp = None
        if self._ssh:
            try:
                self._ssh.close()
            except Exception as e:
                logger.debug("Error closing SSH client: %s", e)
            self._ssh = None

    def disconnect(self) -> None:
        """Close SFTP session and SSH connection."""
        with self._lock:
            self._disconnect_internal()

    def _disconnect_internal(self) -> None:
        self._cleanup_connections()
        self._connected = False
        logger.debug("SSH connection closed")

    def _ensure_connected(self) -> None:
        """Reconnect if the session or transport is gone. Caller must hold lock."""
        if not self._connected or not self._sftp or not self._ssh:
            logger.debug("SSH connection not active, reconnecting")
            self._connect_internal()
            return

        transport = self._ssh.get_transport()
        if transport is None or not transport.is_active():
            logger.debug("SSH transport lost, reconnecting")
            self._disconnect_internal()
            self._connect_internal()

    def remote_path(self, path: str) -> str:
        """Map a view path onto the server path below root_path."""
        path = normalize_path(path)
        root = normalize_path(self.ssh_config.root_path or ROOT)
        if root == ROOT:
            return path
        if path == ROOT:
            return root
        return root + path

    def _with_retry(self, operation: str, func, *args, **kwargs):
        """Execute a function with retry logic. Missing/forbidden paths are not retried."""
        last_exception = None

        for attempt in range(self.conn_config.retry_attempts):
            try:
                with self._lock:
                    self._ensure_connected()
                    return func(*args, **kwargs)
            except (FileNotFoundError, PermissionError, NotADirectoryError):
                raise
            except (TimeoutError, OSError, paramiko.SSHException) as e:
                last_exception = e
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    operation,
                    attempt + 1,
                    self.conn_config.retry_attempts,
                    e,
                )
                if attempt < self.conn_config.retry_attempts - 1:
                    time.sleep(self.conn_config.retry_delay_seconds)
                    with self._lock:
                        self._disconnect_internal()

        logger.error("%s failed after %d attempts", operation, self.conn_config.retry_attempts)
        raise OSError(f"{operation} failed: {last_exception}") from last_exception

    def list_dir(self, path: str) -> list[RemoteEntry]:
        """List contents of a directory."""
        target = self.remote_path(path)
        logger.debug("Listing directory: %s", target)

        def _list_dir_internal() -> list[RemoteEntry]:
            try:
                attrs = self._sftp.listdir_attr(target)
            except IOError as e:
                if getattr(e, "errno", None) in (2, 13, 20):
                    raise translate_io_error(e, path) from e
                raise

            results = []
            for attr in attrs:
                if attr.filename in (".", ".."):
                    continue
                is_dir = stat.S_ISDIR(attr.st_mode) if attr.st_mode else False
                results.append(
                    RemoteEntry(
                        name=attr.filename,
                        is_dir=is_dir,
                        size=attr.st_size if attr.st_size and not is_dir else 0,
                        mtime=attr.st_mtime or None,
                    )
                )
            logger.debug("Listed %d entries in %s", len(results), target)
            return results

        return self._with_retry(f"list_dir({path})", _list_dir_internal)

    def read_file(self, path: str) -> bytes:
        """Read a whole file."""
        target = self.remote_path(path)
        logger.debug("Reading file: %s", target)

        def _read_file_internal() -> bytes:
            try:
                with self._sftp.open(target, "rb") as f:
                    data = f.read()
            except IOError as e:
                if getattr(e, "errno", None) in (2, 13, 20):
                    raise translate_io_error(e, path) from e
                raise
            logger.debug("Read %d bytes from %s", len(data), target)
            return data

        return self._with_retry(f"read_file({path})", _read_file_internal)


class SFTPRemoteClient:
    """RemoteClient over SFTP; blocking paramiko calls run in worker threads."""

    def __init__(self, client: SFTPClient):
        self.client = client

    @classmethod
    def from_config(cls, ssh_config: SSHConfig, conn_config: ConnectionConfig) -> "SFTPRemoteClient":
        return cls(SFTPClient(ssh_config, conn_config))

    async def connect(self) -> None:
        await asyncio.to_thread(self.client.connect)

    async def disconnect(self) -> None:
        await asyncio.to_thread(self.client.disconnect)

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        return await asyncio.to_thread(self.client.list_dir, path)

    async def read_file(self, path: str) -> ReadResult:
        content = await asyncio.to_thread(self.client.read_file, path)
        return ReadResult(content=content, headers={"content-length": str(len(content))})

"""SSH execution of the remote archive pipeline."""

import logging
import os
import threading

import paramiko

from mrbm.servers.models import ServerRecord
from mrbm.templates import render_capture_command
from mrbm.utils.errors import ArchiveCaptureError, create_error_suggestions

logger = logging.getLogger(__name__)

STDERR_LIMIT = 64 * 1024


class RemoteCapture:
    """Runs the archive pipeline on a server and streams its output to a local file."""

    def __init__(self, connect_timeout: int = 30, chunk_size: int = 64 * 1024, verbose: bool = False):
        """
        Initialize remote capture.

        Args:
            connect_timeout: Seconds allowed for TCP connect, banner and authentication
            chunk_size: Read size for the archive stream
            verbose: Enable verbose output
        """
        self.connect_timeout = connect_timeout
        self.chunk_size = chunk_size
        self.verbose = verbose

    def connect(self, record: ServerRecord) -> paramiko.SSHClient:
        """
        Open an SSH session, preferring the private key over the password.

        Raises:
            ArchiveCaptureError: If the connection or authentication fails
        """
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": record.host,
            "port": record.port,
            "username": record.user,
            "timeout": self.connect_timeout,
            "banner_timeout": self.connect_timeout,
            "auth_timeout": self.connect_timeout,
        }

        if record.key_path:
            logger.debug(f"Connecting to {record.target} with key {record.key_path}")
            connect_kwargs["key_filename"] = os.path.expanduser(record.key_path)
            connect_kwargs["look_for_keys"] = False
            connect_kwargs["allow_agent"] = False
        elif record.password:
            logger.debug(f"Connecting to {record.target} with password")
            connect_kwargs["password"] = record.password
            connect_kwargs["look_for_keys"] = False
            connect_kwargs["allow_agent"] = False
        else:
            logger.warning(f"No credential stored for '{record.name}', trying SSH agent and default keys")

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise ArchiveCaptureError(
                f"SSH authentication failed for {record.target}",
                details=str(e),
                suggestions=create_error_suggestions("ssh_auth_failed", port=record.port, target=record.target),
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise ArchiveCaptureError(
                f"Cannot connect to {record.host}:{record.port}",
                details=str(e),
                suggestions=create_error_suggestions("ssh_unreachable"),
            )

        return client

    def capture(self, record: ServerRecord, destination: str) -> int:
        """
        Write the combined application archive and database dump to ``destination``.

        A partially written file is left in place on failure.

        Args:
            record: Server to back up
            destination: Local archive path

        Returns:
            int: Number of bytes written

        Raises:
            ArchiveCaptureError: On connection failure or non-zero remote exit status
        """
        command = render_capture_command(record.app_path, record.db_container, record.db_password)
        client = self.connect(record)

        try:
            stdin, stdout, _ = client.exec_command(command)
            stdin.close()
            channel = stdout.channel

            # stdout and stderr share one channel window, so stderr is drained on its own thread
            stderr = bytearray()
            stderr_reader = threading.Thread(target=self._drain_stderr, args=(channel, stderr), daemon=True)
            stderr_reader.start()

            written = 0
            with open(destination, "wb") as f:
                while True:
                    data = channel.recv(self.chunk_size)
                    if not data:
                        break
                    f.write(data)
                    written += len(data)

            exit_status = channel.recv_exit_status()
            stderr_reader.join()

        except (paramiko.SSHException, OSError) as e:
            raise ArchiveCaptureError(
                f"Archive transfer from {record.host} was interrupted",
                details=str(e),
            )
        finally:
            client.close()

        if exit_status != 0:
            raise ArchiveCaptureError(
                f"Remote backup pipeline on {record.host} exited with status {exit_status}",
                details=stderr.decode("utf-8", errors="replace").strip() or None,
                suggestions=create_error_suggestions("remote_pipeline_failed"),
            )

        logger.debug(f"Received {written} bytes from {record.host}")
        return written

    def _drain_stderr(self, channel: paramiko.Channel, buffer: bytearray) -> None:
        """Read stderr until EOF, keeping at most STDERR_LIMIT bytes."""
        try:
            while True:
                data = channel.recv_stderr(self.chunk_size)
                if not data:
                    break
                if len(buffer) < STDERR_LIMIT:
                    buffer.extend(data[: STDERR_LIMIT - len(buffer)])
        except (paramiko.SSHException, OSError) as e:
            logger.debug(f"Stopped reading remote stderr: {e}")

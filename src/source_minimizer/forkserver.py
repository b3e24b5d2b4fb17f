"""Fork-server session used to amortize the start-up cost of the checked process.

The target process is started once with a preloaded shared object that
intercepts the first access to an input file and turns the process into a
fork server. The target should be single-threaded and must not read the
input files during start-up.

Protocol:

* all communication goes through the server's stdout and stderr, replies are
  told apart from regular output by :data:`MARKER` immediately followed by the
  reply and a newline;
* the initial reply is :data:`INIT_REPLY` on stdout and an empty reply on
  stderr, with nothing printed before either of them;
* writing a single byte (any value) to stdin spawns one child; when the child
  terminates the server replies with its decimal exit code (128 plus the
  signal number for a killed child) on stdout and an empty reply on stderr;
* both streams are read until the marker, so the child timeout is what brings
  a hung child back to the server loop.
"""

from __future__ import annotations

import os
import subprocess
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor
from importlib import resources
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence, Tuple

MARKER = "## FORKSERVER -> SCM ##"
INIT_REPLY = "INIT"
PRELOAD_VAR = "LD_PRELOAD"
TIMEOUT_VAR = "__SCM_TIMEOUT"
INPUT_VAR_FORMAT = "__SCM_INPUT_{}"
PRELOAD_SOURCE = "forksrv-preload.c"


class ForkServerError(RuntimeError):
    """Raised when the fork server cannot be started or violates the protocol."""


def fork_server_environment(
    inputs: Sequence[Path | str],
    timeout_sec: int,
    base: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Return a copy of *base* (default ``os.environ``) describing the inputs.

    Inputs are numbered contiguously from zero; the first missing index ends
    the list.
    """

    env = dict(os.environ if base is None else base)
    env[TIMEOUT_VAR] = str(timeout_sec)
    for index, path in enumerate(inputs):
        env[INPUT_VAR_FORMAT.format(index)] = str(path)
    return env


def compile_preload_object(delete_at_exit: List[Path]) -> Path:
    """Compile the bundled preload source into a shared object.

    The C compiler is taken from ``$CC`` (default ``cc``). Created files are
    appended to *delete_at_exit*.
    """

    fd, source_name = tempfile.mkstemp(prefix="source-minimizer-forkserver-", suffix=".c")
    os.close(fd)
    source = Path(source_name)
    delete_at_exit.append(source)
    fd, output_name = tempfile.mkstemp(prefix="source-minimizer-forkserver-", suffix=".so")
    os.close(fd)
    output = Path(output_name)
    delete_at_exit.append(output)

    source.write_text(resources.files(__package__).joinpath(PRELOAD_SOURCE).read_text())
    compiler = os.environ.get("CC", "cc")
    try:
        proc = subprocess.run(
            [compiler, "--shared", "-fPIC", str(source), "-o", str(output)],
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise ForkServerError(f"Cannot compile fork server preloaded object: {exc}") from exc
    if proc.returncode != 0:
        raise ForkServerError(
            "Cannot compile fork server preloaded object: compiler exited with code "
            f"{proc.returncode}\n{proc.stdout}{proc.stderr}"
        )
    return output


def read_until_marker(stream: IO[str], contents: List[str]) -> Optional[str]:
    """Collect lines from *stream* into *contents* until the marker.

    Returns the reply following the marker, or ``None`` on end of stream.
    """

    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.rstrip("\r\n")
        index = line.find(MARKER)
        if index == -1:
            contents.append(line)
        else:
            if index > 0:
                contents.append(line[:index])
            return line[index + len(MARKER):]


class ForkServer:
    """A running fork server process."""

    def __init__(self, command: Sequence[str], env: Mapping[str, str]) -> None:
        self.command = list(command)
        self.env = dict(env)
        self.process: Optional[subprocess.Popen[str]] = None
        self.children_spawned = 0
        self._stderr_reader: Optional[ThreadPoolExecutor] = None

    def _read_replies(self) -> Tuple[Optional[str], List[str], Optional[str], List[str]]:
        assert self.process is not None and self._stderr_reader is not None
        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        # drain stderr concurrently so a chatty child cannot fill the pipe
        pending = self._stderr_reader.submit(read_until_marker, self.process.stderr, stderr_lines)
        stdout_reply = read_until_marker(self.process.stdout, stdout_lines)
        stderr_reply = pending.result()
        return stdout_reply, stdout_lines, stderr_reply, stderr_lines

    def start(self) -> None:
        """Start the server and check its initial reply."""

        self.process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=self.env,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        self._stderr_reader = ThreadPoolExecutor(max_workers=1)
        stdout_reply, stdout_lines, stderr_reply, stderr_lines = self._read_replies()
        if stdout_reply != INIT_REPLY or stderr_reply != "" or stdout_lines or stderr_lines:
            print("Fork server did not start properly, check your command line.", file=sys.stderr)
            print("Possible causes:", file=sys.stderr)
            print("  * the checked process tried to spawn a thread or a subprocess", file=sys.stderr)
            print("  * the checked process has not touched any input file", file=sys.stderr)
            print("  * the checked process printed something before touching its input", file=sys.stderr)
            print("STDOUT:", file=sys.stderr)
            for line in stdout_lines:
                print(line, file=sys.stderr)
            print("STDERR:", file=sys.stderr)
            for line in stderr_lines:
                print(line, file=sys.stderr)
            self.close()
            raise ForkServerError(f"Invalid fork server reply: stdout[{stdout_reply}], stderr[{stderr_reply}]")

    def run_child(self) -> Tuple[int, List[str], List[str]]:
        """Spawn one child and return its exit code and output lines."""

        if self.process is None or self.process.stdin is None:
            raise ForkServerError("Fork server is not running.")
        try:
            self.process.stdin.write("\n")
            self.process.stdin.flush()
        except (BrokenPipeError, ValueError) as exc:
            raise ForkServerError("Fork server terminated unexpectedly") from exc
        self.children_spawned += 1

        stdout_reply, stdout_lines, stderr_reply, stderr_lines = self._read_replies()
        if stdout_reply is None or stderr_reply is None:
            raise ForkServerError("Fork server terminated unexpectedly")
        message = f"Invalid fork server reply: stdout[{stdout_reply}], stderr[{stderr_reply}]"
        if stderr_reply:
            raise ForkServerError(message)
        try:
            exit_code = int(stdout_reply)
        except ValueError as exc:
            raise ForkServerError(message) from exc
        return exit_code, stdout_lines, stderr_lines

    def close(self) -> None:
        if self.process is not None:
            if self.process.poll() is None:
                self.process.terminate()
                try:
                    self.process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    self.process.kill()
                    self.process.wait()
            for stream in (self.process.stdin, self.process.stdout, self.process.stderr):
                if stream is not None:
                    try:
                        stream.close()
                    except OSError:
                        pass
            self.process = None
        if self._stderr_reader is not None:
            self._stderr_reader.shutdown(wait=False)
            self._stderr_reader = None


__all__ = [
    "ForkServer",
    "ForkServerError",
    "INIT_REPLY",
    "MARKER",
    "compile_preload_object",
    "fork_server_environment",
    "read_until_marker",
]

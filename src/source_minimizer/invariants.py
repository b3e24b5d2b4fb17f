"""Invariants checked on the current state of the scratch files."""

from __future__ import annotations

import atexit
import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, TextIO

from . import config as config_module, forkserver as forkserver_module


class InvariantConfigurationError(config_module.ConfigurationError):
    """Raised when the checked command cannot be run at all."""


class InvariantOperations(Protocol):
    def all_inputs_are_parseable(self) -> bool:  # pragma: no cover - protocol
        ...

    def scratch_file_names(self) -> List[Path]:  # pragma: no cover - protocol
        ...


class Invariant:
    """Checks some property of processing the scratch files."""

    def initialize(self, ops: InvariantOperations) -> None:
        """Called once before the minimization starts."""

        self.ops = ops

    def check_is_satisfied(self) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__

    def print_statistics(self, stream: TextIO) -> None:
        pass

    def statistics(self) -> Dict[str, int]:
        return {}

    def close(self) -> None:
        pass


class DummyInvariant(Invariant):
    def check_is_satisfied(self) -> bool:
        return True

    def describe(self) -> str:
        return "Dummy invariant (always satisfied)"


def _normalize_exit_code(returncode: int) -> int:
    # a process killed by a signal is reported the way a shell reports it
    return 128 - returncode if returncode < 0 else returncode


class ProcessInvariant(Invariant):
    """Runs an external command line and inspects its exit code and output.

    With ``forkserver=True`` the command is started once under a fork server
    (Linux only) and every check only forks a fresh child.
    """

    def __init__(
        self,
        command_line: str,
        *,
        forkserver: bool = False,
        forkserver_child_timeout: int = 1,
    ) -> None:
        if forkserver and not sys.platform.startswith("linux"):
            raise config_module.ConfigurationError("Fork server is requested on an unsupported OS.")
        self.command_line = command_line
        self.use_forkserver = forkserver
        self.forkserver_child_timeout = forkserver_child_timeout
        self.spawn_count = 0
        self.fruitful_count = 0
        self.server: Optional[forkserver_module.ForkServer] = None
        self._delete_at_exit: List[Path] = []

    def command(self) -> List[str]:
        if os.name == "nt":
            return ["cmd.exe", "/C", self.command_line]
        return ["/bin/sh", "-c", self.command_line]

    def initialize(self, ops: InvariantOperations) -> None:
        super().initialize(ops)
        if self.use_forkserver:
            atexit.register(self.close)
            preloaded = forkserver_module.compile_preload_object(self._delete_at_exit)
            # not via the environment: the shell itself must not be preloaded
            command = [
                "/bin/sh",
                "-c",
                f"{forkserver_module.PRELOAD_VAR}={shlex.quote(str(preloaded.resolve()))} {self.command_line}",
            ]
            env = forkserver_module.fork_server_environment(ops.scratch_file_names(), self.forkserver_child_timeout)
            server = forkserver_module.ForkServer(command, env)
            server.start()
            self.server = server
            print("Connected to fork server.", flush=True)

    def test_satisfied(self, exit_code: int, stdout: Sequence[str], stderr: Sequence[str]) -> bool:
        raise NotImplementedError

    def _spawn(self):
        if self.server is not None:
            return self.server.run_child()
        try:
            proc = subprocess.run(
                self.command(),
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise InvariantConfigurationError(f"Cannot run {self.command_line!r}: {exc}") from exc
        return _normalize_exit_code(proc.returncode), proc.stdout.splitlines(), proc.stderr.splitlines()

    def check_is_satisfied(self) -> bool:
        # parsing is much cheaper than spawning the checked process
        if not self.ops.all_inputs_are_parseable():
            return False
        exit_code, stdout, stderr = self._spawn()
        self.spawn_count += 1
        satisfied = self.test_satisfied(exit_code, stdout, stderr)
        if satisfied:
            self.fruitful_count += 1
        return satisfied

    def statistics(self) -> Dict[str, int]:
        return {"spawn_count": self.spawn_count, "fruitful_count": self.fruitful_count}

    def print_statistics(self, stream: TextIO) -> None:
        percent = self.fruitful_count * 100 // self.spawn_count if self.spawn_count else 0
        print(f"Invariant: {self.describe()}", file=stream)
        print(
            f"Spawned {self.spawn_count} processes, {self.fruitful_count} fruitful ({percent}%)",
            file=stream,
        )

    def close(self) -> None:
        if self.server is not None:
            self.server.close()
            self.server = None
        while self._delete_at_exit:
            path = self._delete_at_exit.pop()
            if path.exists():
                path.unlink()


class ExitCodeInvariant(ProcessInvariant):
    """Checks that the command exits with a code from an inclusive range."""

    def __init__(
        self,
        command_line: str,
        *,
        min_return: int = 1,
        max_return: Optional[int] = None,
        exact_return: int = -1,
        **kwargs,
    ) -> None:
        super().__init__(command_line, **kwargs)
        if exact_return >= 0:
            self.min_return: int = exact_return
            self.max_return: Optional[int] = exact_return
        else:
            self.min_return = min_return
            self.max_return = max_return

    def test_satisfied(self, exit_code: int, stdout: Sequence[str], stderr: Sequence[str]) -> bool:
        if exit_code < self.min_return:
            return False
        return self.max_return is None or exit_code <= self.max_return

    def describe(self) -> str:
        if self.min_return == self.max_return:
            return f"Exits with code = {self.min_return}"
        if self.max_return is None:
            return f"Exits with code >= {self.min_return}"
        return f"Exits with code from {self.min_return} to {self.max_return}, inclusive"


class PrintedMessageInvariant(ProcessInvariant):
    """Checks that the command prints a message on stdout or stderr."""

    def __init__(self, command_line: str, *, message: str, **kwargs) -> None:
        super().__init__(command_line, **kwargs)
        self.message = message

    def test_satisfied(self, exit_code: int, stdout: Sequence[str], stderr: Sequence[str]) -> bool:
        return any(self.message in line for line in [*stdout, *stderr])

    def describe(self) -> str:
        return f"Prints {self.message!r}"


def _create_exit_code(cfg: config_module.InvariantConfig) -> Invariant:
    return ExitCodeInvariant(
        cfg.command_line or "",
        min_return=cfg.min_return,
        max_return=cfg.max_return,
        exact_return=cfg.exact_return,
        forkserver=cfg.forkserver,
        forkserver_child_timeout=cfg.forkserver_child_timeout,
    )


def _create_printed_message(cfg: config_module.InvariantConfig) -> Invariant:
    return PrintedMessageInvariant(
        cfg.command_line or "",
        message=cfg.message or "",
        forkserver=cfg.forkserver,
        forkserver_child_timeout=cfg.forkserver_child_timeout,
    )


INVARIANTS: Dict[str, Callable[[config_module.InvariantConfig], Invariant]] = {
    "dummy": lambda cfg: DummyInvariant(),
    "exitcode": _create_exit_code,
    "message": _create_printed_message,
}


def create_invariant(cfg: config_module.InvariantConfig) -> Invariant:
    factory = INVARIANTS.get(cfg.name)
    if factory is None:
        raise config_module.ConfigurationError(
            f"Unknown invariant {cfg.name!r}; supported: {', '.join(sorted(INVARIANTS))}"
        )
    return factory(cfg)


__all__ = [
    "DummyInvariant",
    "ExitCodeInvariant",
    "INVARIANTS",
    "Invariant",
    "InvariantConfigurationError",
    "InvariantOperations",
    "PrintedMessageInvariant",
    "ProcessInvariant",
    "create_invariant",
]

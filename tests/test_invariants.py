import os
import sys
from pathlib import Path

import pytest

from source_minimizer import config as config_module, invariants

posix_only = pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shell")


class FakeOps:
    def __init__(self, parseable: bool = True, names=()):
        self.parseable = parseable
        self.names = [Path(name) for name in names]
        self.parse_checks = 0

    def all_inputs_are_parseable(self) -> bool:
        self.parse_checks += 1
        return self.parseable

    def scratch_file_names(self):
        return self.names


def test_dummy_invariant_is_always_satisfied():
    invariant = invariants.DummyInvariant()
    invariant.initialize(FakeOps(parseable=False))
    assert invariant.check_is_satisfied()


@posix_only
def test_exit_code_range():
    invariant = invariants.ExitCodeInvariant("exit 3", min_return=2, max_return=4)
    invariant.initialize(FakeOps())
    assert invariant.check_is_satisfied()

    invariant = invariants.ExitCodeInvariant("exit 5", min_return=2, max_return=4)
    invariant.initialize(FakeOps())
    assert not invariant.check_is_satisfied()
    assert invariant.spawn_count == 1
    assert invariant.fruitful_count == 0


@posix_only
def test_exact_return_overrides_range():
    invariant = invariants.ExitCodeInvariant("exit 0", min_return=1, exact_return=0)
    invariant.initialize(FakeOps())
    assert invariant.check_is_satisfied()
    assert invariant.describe() == "Exits with code = 0"


def test_describe_exit_code_ranges():
    assert invariants.ExitCodeInvariant("true").describe() == "Exits with code >= 1"
    assert (
        invariants.ExitCodeInvariant("true", min_return=2, max_return=9).describe()
        == "Exits with code from 2 to 9, inclusive"
    )


@posix_only
def test_unparseable_inputs_skip_the_process():
    ops = FakeOps(parseable=False)
    invariant = invariants.ExitCodeInvariant("exit 1")
    invariant.initialize(ops)
    assert not invariant.check_is_satisfied()
    assert ops.parse_checks == 1
    assert invariant.spawn_count == 0


@posix_only
def test_printed_message_is_searched_in_both_streams():
    invariant = invariants.PrintedMessageInvariant("echo 'internal compiler error' >&2", message="compiler error")
    invariant.initialize(FakeOps())
    assert invariant.check_is_satisfied()

    invariant = invariants.PrintedMessageInvariant("echo all good", message="compiler error")
    invariant.initialize(FakeOps())
    assert not invariant.check_is_satisfied()


@posix_only
def test_signal_exit_is_reported_like_a_shell():
    invariant = invariants.ExitCodeInvariant("kill -9 $$", exact_return=137)
    invariant.initialize(FakeOps())
    assert invariant.check_is_satisfied()


def test_statistics_are_printed(capsys):
    invariant = invariants.ExitCodeInvariant("true", exact_return=0)
    invariant.spawn_count = 4
    invariant.fruitful_count = 1
    invariant.print_statistics(sys.stdout)
    out = capsys.readouterr().out
    assert "Invariant: Exits with code = 0" in out
    assert "Spawned 4 processes, 1 fruitful (25%)" in out
    assert invariant.statistics() == {"spawn_count": 4, "fruitful_count": 1}


def test_spawn_failure_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch):
    def fail(*args, **kwargs):
        raise FileNotFoundError("no shell")

    monkeypatch.setattr(invariants.subprocess, "run", fail)
    invariant = invariants.ExitCodeInvariant("anything")
    invariant.initialize(FakeOps())
    with pytest.raises(invariants.InvariantConfigurationError):
        invariant.check_is_satisfied()


def test_forkserver_requires_linux(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(invariants.sys, "platform", "win32")
    with pytest.raises(config_module.ConfigurationError):
        invariants.ExitCodeInvariant("true", forkserver=True)


def test_create_invariant():
    cfg = config_module.InvariantConfig(name="message", command_line="cc -c x.c", message="ICE")
    created = invariants.create_invariant(cfg)
    assert isinstance(created, invariants.PrintedMessageInvariant)
    assert created.message == "ICE"
    assert created.command() == (
        ["cmd.exe", "/C", "cc -c x.c"] if os.name == "nt" else ["/bin/sh", "-c", "cc -c x.c"]
    )
    assert isinstance(invariants.create_invariant(config_module.InvariantConfig(name="dummy")), invariants.DummyInvariant)
    with pytest.raises(config_module.ConfigurationError):
        invariants.create_invariant(config_module.InvariantConfig(name="sometimes"))


def test_negative_exit_codes_map_to_signal_codes():
    assert invariants._normalize_exit_code(-11) == 139
    assert invariants._normalize_exit_code(2) == 2

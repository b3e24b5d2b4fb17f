import hashlib
from pathlib import Path

import pytest

from source_minimizer import python_language, scratch


@pytest.fixture()
def lang() -> python_language.PythonLanguage:
    return python_language.PythonLanguage()


def _scratch(lang, path: Path, text: str) -> scratch.ScratchFile:
    path.write_text(text)
    scratch_file = scratch.ScratchFile(lang, path)
    assert scratch_file.commit_change() is not None
    return scratch_file


def test_commit_and_rollback(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\ny = 2\n") as scratch_file:
        assert scratch_file.last_committed.read_text() == "x = 1\ny = 2\n"
        assert len(scratch_file.all_nodes) == len(scratch_file.root.tree)

        path.write_text("x = 1\n")
        root = scratch_file.commit_change()
        assert root is not None
        assert scratch_file.root == root
        assert scratch_file.committed_size() == len("x = 1\n")

        path.write_text("garbage")
        scratch_file.rollback()
        assert path.read_text() == "x = 1\n"


def test_failed_commit_keeps_previous_state(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\n") as scratch_file:
        root = scratch_file.root
        path.write_text("x = (\n")
        assert not scratch_file.is_parseable()
        assert scratch_file.commit_change() is None
        assert scratch_file.root == root
        assert scratch_file.last_committed.read_text() == "x = 1\n"
        assert scratch_file.prepared_root is None


def test_commit_all_is_atomic(tmp_path: Path, lang):
    first = _scratch(lang, tmp_path / "a.py", "a = 1\n")
    second = _scratch(lang, tmp_path / "b.py", "b = 2\n")
    roots = [first.root, second.root]

    first.path.write_text("a = 10\n")
    second.path.write_text("b = (\n")
    assert scratch.commit_all([first, second]) is None
    assert [first.root, second.root] == roots
    assert first.last_committed.read_text() == "a = 1\n"

    second.path.write_text("b = 20\n")
    new_roots = scratch.commit_all([first, second])
    assert new_roots == [first.root, second.root]
    assert first.last_committed.read_text() == "a = 10\n"
    assert second.last_committed.read_text() == "b = 20\n"
    first.close()
    second.close()


def test_write_trimmed_source_starts_from_committed_state(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\ny = 2\nz = 3\n") as scratch_file:
        path.write_text("unrelated edit\n")
        middle = scratch_file.root.children[1]
        scratch_file.write_trimmed_source({middle})
        assert path.read_text() == "x = 1\n\nz = 3\n"
        # committing is up to the caller
        assert scratch_file.last_committed.read_text() == "x = 1\ny = 2\nz = 3\n"


def test_write_trimmed_source_rejects_foreign_nodes(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\n") as scratch_file:
        foreign = lang.parse("other.py", "x = 1\n").children[0]
        with pytest.raises(AssertionError):
            scratch_file.write_trimmed_source({foreign})


def test_cleanup_and_blank_line_removal(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\n\n# note\n\n\ny = 2\n") as scratch_file:
        scratch_file.write_cleaned_up_source()
        assert path.read_text() == "x = 1\n\ny = 2\n"
        scratch_file.write_without_empty_lines()
        assert path.read_text() == "x = 1\n# note\ny = 2\n"


def test_hash_into_reads_scratch_contents(tmp_path: Path, lang):
    path = tmp_path / "mod.py"
    with _scratch(lang, path, "x = 1\n") as scratch_file:
        hasher = hashlib.sha512()
        scratch_file.hash_into(hasher)
        assert hasher.hexdigest() == hashlib.sha512((6).to_bytes(8, "big") + b"x = 1\n").hexdigest()


def test_close_removes_snapshot(tmp_path: Path, lang):
    scratch_file = _scratch(lang, tmp_path / "mod.py", "x = 1\n")
    snapshot = scratch_file.last_committed
    scratch_file.close()
    assert not snapshot.exists()
    assert (tmp_path / "mod.py").exists()

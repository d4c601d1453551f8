"""End-to-end tests for the command line."""

import json
import os
import tempfile

import pytest

from helpers import create_clean_repo, create_nasty_repo, init_repo
from unpushed import __version__
from unpushed.cli import EXIT_CONFIG, EXIT_OK, build_parser, main


def _run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


def test_lists_only_dirty_repo(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        create_clean_repo(tmp)
        nasty = create_nasty_repo(tmp)
        code, out, _ = _run(capsys, tmp, "-t", "2")
        assert code == EXIT_OK
        assert out.splitlines() == [nasty]


def test_reasons_column(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        nasty = create_nasty_repo(tmp)
        code, out, _ = _run(capsys, tmp, "--reasons")
        assert code == EXIT_OK
        assert out.splitlines() == [f"{nasty}\tuntracked_files"]


def test_empty_directory_prints_nothing(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        code, out, _ = _run(capsys, tmp)
        assert code == EXIT_OK
        assert out == ""


def test_missing_path_is_config_error(capsys):
    code, out, err = _run(capsys, "/nonexistent/path/that/does/not/exist")
    assert code == EXIT_CONFIG
    assert out == ""
    assert "does not exist" in err


@pytest.mark.parametrize("threads", ["0", "-3"])
def test_non_positive_threads_is_config_error(capsys, threads):
    with tempfile.TemporaryDirectory() as tmp:
        code, out, err = _run(capsys, tmp, "--threads", threads)
        assert code == EXIT_CONFIG
        assert out == ""
        assert "thread count" in err


def test_malformed_thread_count_rejected_by_parser(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--threads", "many"])
    assert exc.value.code == 2


def test_json_output(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        clean = create_clean_repo(tmp)
        nasty = create_nasty_repo(tmp)
        code, out, _ = _run(capsys, tmp, "--json")
        assert code == EXIT_OK
        data = json.loads(out)
        assert data["summary"]["total"] == 2
        assert data["summary"]["dirty"] == 1
        statuses = {r["path"]: r["status"] for r in data["repos"]}
        assert statuses == {clean: "clean", nasty: "dirty"}


def test_summary_output(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        create_clean_repo(tmp)
        create_nasty_repo(tmp)
        code, out, _ = _run(capsys, tmp, "--summary")
        assert code == EXIT_OK
        assert "nasty-repo" in out
        assert "clean-repo" not in out


def test_missing_head_mode(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        create_clean_repo(tmp)
        empty = init_repo(os.path.join(tmp, "empty"))
        code, out, err = _run(capsys, tmp, "--missing-head")
        assert code == EXIT_OK
        assert out.splitlines() == [empty]
        # Default level is error in this mode, so the HEAD warning stays quiet.
        assert "no HEAD" not in err


def test_missing_head_warned_in_default_mode(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        init_repo(os.path.join(tmp, "empty"))
        code, out, err = _run(capsys, tmp)
        assert code == EXIT_OK
        assert out == ""
        assert "Repository has no HEAD" in err


def test_verbose_logs_to_stderr_only(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        nasty = create_nasty_repo(tmp)
        code, out, err = _run(capsys, tmp, "-v")
        assert code == EXIT_OK
        assert out.splitlines() == [nasty]
        assert "Starting repository scan" in err
        assert "Starting repository scan" not in out


def test_log_level_off_silences_errors(capsys):
    code, _, err = _run(capsys, "/nonexistent/path", "--log-level", "OFF")
    assert code == EXIT_CONFIG
    assert err == ""


def test_env_var_overrides_log_level(capsys, monkeypatch):
    monkeypatch.setenv("UNPUSHED_LOG", "off")
    code, _, err = _run(capsys, "/nonexistent/path", "--log-level", "debug")
    assert code == EXIT_CONFIG
    assert err == ""


def test_output_modes_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--json", "--summary"])


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out

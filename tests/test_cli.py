from __future__ import annotations

import pytest

import quire.cli as cli


def _book(tmp_path, name: str = "story.txt"):
    path = tmp_path / name
    path.write_text(
        "It was a dark and stormy night.\n\nHe said 'Run' and left.\n\nThe end.",
        encoding="utf-8",
    )
    return path


def test_read_prints_page_and_footer(tmp_path, capsys) -> None:
    path = _book(tmp_path)
    assert cli.main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "It was a dark and stormy night." in out
    assert 'He said "Run" and left.' in out
    assert "1/1" in out


def test_read_without_quote_normalization(tmp_path, capsys) -> None:
    path = _book(tmp_path)
    assert cli.main([str(path), "--no-quotes"]) == 0
    assert "He said 'Run' and left." in capsys.readouterr().out


def test_no_quotes_help_describes_dialogue_conversion() -> None:
    parser = cli.build_parser()
    action = next(action for action in parser._actions if "--no-quotes" in action.option_strings)
    assert "double quotes" in action.help
    assert "curly" not in action.help


def test_read_small_viewport_paginates(tmp_path, capsys) -> None:
    path = _book(tmp_path)
    assert cli.main([str(path), "--width", "200", "--height", "150", "--page", "3"]) == 0
    out = capsys.readouterr().out
    assert "The end." in out
    assert "3/3" in out


@pytest.mark.parametrize("value", ["inf", "nan", "-5"])
def test_non_finite_viewport_metrics_are_rejected(tmp_path, capsys, value: str) -> None:
    path = _book(tmp_path)
    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(path), f"--width={value}"])
    assert excinfo.value.code == 2
    assert "finite, non-negative" in capsys.readouterr().err


def test_find_reports_page(tmp_path, capsys) -> None:
    path = _book(tmp_path)
    assert cli.main(["find", str(path), "STORMY night"]) == 0
    assert "Page 1/1" in capsys.readouterr().out
    assert cli.main(["find", str(path), "white whale"]) == 1


def test_pages_lists_every_page(tmp_path, capsys) -> None:
    path = _book(tmp_path)
    assert cli.main(["pages", str(path), "--width", "200", "--height", "150"]) == 0
    out = capsys.readouterr().out
    assert "Opens with" in out
    assert "The end." in out


def test_unreadable_book_returns_error(tmp_path, capsys) -> None:
    path = tmp_path / "broken.epub"
    path.write_bytes(b"not a zip")
    assert cli.main([str(path)]) == 1
    assert "Could not open EPUB" in capsys.readouterr().out


def test_missing_book_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        cli.main([str(tmp_path / "absent.txt")])


def test_web_uses_env_root_and_utf8_access_log(monkeypatch, tmp_path) -> None:
    calls: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", _fake_run)
    monkeypatch.setenv("QUIRE_ROOT", str(tmp_path))

    assert cli.main(["web", "--host", "127.0.0.1", "--port", "9000"]) == 0
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 9000
    assert calls["app"].state.root == tmp_path.resolve()
    access = calls["log_config"]["formatters"]["access"]
    assert access["()"] == "quire.logging_utils.Utf8AccessFormatter"


def test_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--version"])
    assert excinfo.value.code == 0
    assert capsys.readouterr().out.startswith("quire ")

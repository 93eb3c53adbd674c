import pytest

from govulndb.lines import read_file_lines


def test_skips_blank_and_comment_lines(tmp_path):
    path = tmp_path / "list.txt"
    path.write_text("# header\n\n  alpha  \n\t\nbeta\n   # indented comment\ngamma # trailing\n")
    assert read_file_lines(path) == ["alpha", "beta", "gamma # trailing"]


def test_crlf_line_endings(tmp_path):
    path = tmp_path / "list.txt"
    path.write_bytes(b"one\r\ntwo\r\n")
    assert read_file_lines(path) == ["one", "two"]


def test_empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("")
    assert read_file_lines(path) == []


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_file_lines(tmp_path / "missing.txt")
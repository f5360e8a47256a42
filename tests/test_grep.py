import io

import pytest

from xvfs.grep import grep, main, match, match_here, match_star


@pytest.mark.parametrize(
    "regex,text,expected",
    [
        ("abc", "xxabcxx", True),
        ("abc", "abx", False),
        ("^ab", "abc", True),
        ("^ab", "cab", False),
        ("c$", "abc", True),
        ("c$", "abcd", False),
        ("a.c", "zabcz", True),
        ("a*b", "b", True),
        ("^a*b$", "aaab", True),
        ("^a*b$", "aaac", False),
        (".*", "", True),
        ("", "anything", True),
        ("^$", "", True),
        ("^$", "x", False),
    ],
)
def test_match(regex, text, expected):
    assert match(regex, text) is expected


def test_match_here_anchored():
    assert match_here("ab", "abc") is True
    assert match_here("bc", "abc") is False


def test_match_star():
    assert match_star("a", "b", "aaab") is True
    assert match_star(".", "z", "xyz") is True
    assert match_star("a", "b", "ccb") is False


def test_long_text_does_not_recurse_deeply():
    text = "x" * 5000 + "y"
    assert match("x*y$", text) is True


def test_grep_yields_matching_lines():
    data = io.BytesIO(b"apple\nbanana\ncherry\napricot\n")
    assert list(grep("^ap", data)) == [b"apple\n", b"apricot\n"]


def test_grep_drops_final_unterminated_line():
    data = io.BytesIO(b"one\ntwo")
    assert list(grep("o", data)) == [b"one\n"]


def test_grep_drops_overlong_line():
    data = io.BytesIO(b"a" * 2000 + b"\nab\n")
    lines = list(grep("b", data))
    assert lines[-1] == b"ab\n"
    assert all(len(line) < 1024 for line in lines)


def test_main_reads_files(tmp_path, capsysbinary):
    path = tmp_path / "words"
    path.write_bytes(b"red\ngreen\nblue\n")
    assert main(["e$", str(path)]) == 0
    assert capsysbinary.readouterr().out == b"blue\n"


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage: grep" in capsys.readouterr().err


def test_main_cannot_open(tmp_path, capsys):
    missing = tmp_path / "missing"
    assert main(["x", str(missing)]) == 1
    assert f"grep: cannot open {missing}" in capsys.readouterr().out
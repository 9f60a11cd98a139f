"""
Tests for the `strand` command line entry point.
"""

from strand.__main__ import USAGE, main


def write_script(tmp_path, text):
    path = tmp_path / "script.strand"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestMain:
    def test_no_arguments(self, capsys):
        assert main([]) == 1
        assert capsys.readouterr().out.strip() == USAGE

    def test_too_many_arguments(self, capsys):
        assert main(["a.strand", "b.strand"]) == 1
        assert capsys.readouterr().out.strip() == USAGE

    def test_missing_file(self, tmp_path, capsys):
        missing = str(tmp_path / "missing.strand")
        assert main([missing]) == 1
        assert capsys.readouterr().err.strip() == f"ERROR: Unable to read file '{missing}'"

    def test_successful_run(self, tmp_path, capsys):
        path = write_script(tmp_path, 'VAR who = "world"\nPRINT "hello " + who\n')
        assert main([path]) == 0
        captured = capsys.readouterr()
        assert captured.out == "hello world\n"
        assert captured.err == ""

    def test_runtime_error(self, tmp_path, capsys):
        path = write_script(tmp_path, 'PRINT "before"\nPRINT missing\n')
        assert main([path]) == 1
        captured = capsys.readouterr()
        assert captured.out == "before\n"
        assert captured.err.strip() == "ERROR (line 2): Unknown variable 'missing'"

    def test_syntax_error(self, tmp_path, capsys):
        path = write_script(tmp_path, 'ELSE PRINT "x"\n')
        assert main([path]) == 1
        assert capsys.readouterr().err.startswith("ERROR (line 1): ")

    def test_no_loop_limit(self, tmp_path, capsys):
        path = write_script(tmp_path, 'VAR n = "' + "a" * 200 + '"\nWHILE (n) {\nn = n - "a"\n}\nPRINT "done"\n')
        assert main([path]) == 0
        assert capsys.readouterr().out == "done\n"

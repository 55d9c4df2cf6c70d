from unittest.mock import patch

import pytest

from bulk_pr import cli
from bulk_pr.config import DEFAULT_CLONE_BASE_DIR
from bulk_pr.errors import AuthenticationError


@pytest.fixture(autouse=True)
def no_user_config(tmp_path, monkeypatch):
    monkeypatch.setattr("bulk_pr.config.DEFAULT_CONFIG_FILE", str(tmp_path / "absent.yaml"))


class TestRepoNames:
    @pytest.mark.parametrize("value", [
        "org/repo",
        "https://github.com/org/repo",
        "https://github.com/org/repo.git",
        "git@github.com:org/repo.git",
        "ssh://git@ghe.example.com/org/repo.git",
    ])
    def test_normalize(self, value):
        assert cli.normalize_repo_name(value) == "org/repo"

    def test_read_repos_file(self, tmp_path, caplog):
        path = tmp_path / "repos.txt"
        path.write_text("# comment\n\norg/one\nhttps://github.com/org/two.git\nnot-a-repo\n")
        assert cli.read_repos_file(str(path)) == ["org/one", "org/two"]
        assert "line 5" in caplog.text


class TestArguments:
    def test_defaults(self):
        args = cli.build_parser().parse_args(["-c", "make fix", "-m", "fix: it", "org/repo"])
        config = cli.config_from_args(args)
        assert config.cmd_line == "make fix"
        assert config.commit is True
        assert config.clone is True
        assert config.dry_run is False
        assert config.json is False
        assert config.clone_base_dir == DEFAULT_CLONE_BASE_DIR
        assert args.repos == ["org/repo"]

    def test_flags(self, tmp_path):
        args = cli.build_parser().parse_args([
            "-c", "x", "-C", "-t", "title", "--no-clone", "-n", "-j",
            "-d", str(tmp_path), "-a", "make test", "-b", "br", "o/a", "o/b",
        ])
        config = cli.config_from_args(args)
        assert config.commit is False
        assert config.clone is False
        assert config.dry_run is True
        assert config.json is True
        assert config.after_commit_cmd_line == "make test"
        assert config.branch == "br"
        assert config.clone_base_dir == str(tmp_path)

    def test_config_file_values(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text(f"clone_base_dir: {tmp_path}/base\nhost: ghe.example.com\n")
        args = cli.build_parser().parse_args(["-c", "x", "-m", "m", "--config", str(path), "o/a"])
        config = cli.config_from_args(args)
        assert config.clone_base_dir == f"{tmp_path}/base"
        assert config.host == "ghe.example.com"

    def test_cmd_line_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["org/repo"])


class TestMain:
    def test_no_commit_without_title_fails_early(self):
        with patch("bulk_pr.cli.run_bulk_pr") as run:
            with pytest.raises(SystemExit) as excinfo:
                cli.main(["-c", "x", "--no-commit", "org/repo"])
        assert excinfo.value.code == 2
        run.assert_not_called()

    def test_both_commit_messages_fail_early(self, tmp_path):
        with patch("bulk_pr.cli.run_bulk_pr") as run:
            with pytest.raises(SystemExit):
                cli.main(["-c", "x", "-m", "m", "-f", str(tmp_path / "f"), "org/repo"])
        run.assert_not_called()

    def test_no_repositories(self):
        with pytest.raises(SystemExit):
            cli.main(["-c", "x", "-m", "m"])

    def test_runs_repos_from_args_and_file(self, tmp_path):
        repos_file = tmp_path / "repos.txt"
        repos_file.write_text("org/two\n")
        with patch("bulk_pr.cli.run_bulk_pr", return_value=[{"status": "created"}]) as run:
            code = cli.main(["-c", "x", "-m", "m", "--repos-file", str(repos_file), "git@github.com:org/one.git"])
        assert code == 0
        assert run.call_args[0][1] == ["org/one", "org/two"]

    def test_failed_targets_exit_nonzero(self):
        with patch("bulk_pr.cli.run_bulk_pr", return_value=[{"status": "skipped"}, {"status": "failed"}]):
            assert cli.main(["-c", "x", "-m", "m", "org/repo"]) == 1

    def test_auth_error(self):
        with patch("bulk_pr.cli.run_bulk_pr", side_effect=AuthenticationError("no token")):
            assert cli.main(["-c", "x", "-m", "m", "org/repo"]) == 1

    @pytest.mark.parametrize("argv, message", [
        (["-c", "true", "-m", "x", "justname"], "owner/repo"),
        (["-c", "true", "-m", "!!!", "org/repo"], "--branch"),
    ])
    def test_configuration_errors_from_run_exit_2(self, argv, message, capsys, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "unused")
        with pytest.raises(SystemExit) as excinfo:
            cli.main(argv)
        assert excinfo.value.code == 2
        assert message in capsys.readouterr().err

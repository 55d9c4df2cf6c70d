import pytest

from bulk_pr import config as config_module
from bulk_pr.config import BulkRunConfig, load_config_file
from bulk_pr.errors import ConfigurationError


class TestValidate:
    def test_valid_commit_mode(self):
        BulkRunConfig(cmd_line="true", commit_msg="msg").validate()

    def test_valid_no_commit_mode(self):
        BulkRunConfig(cmd_line="true", commit=False, title="t").validate()

    def test_both_message_sources(self):
        with pytest.raises(ConfigurationError):
            BulkRunConfig(cmd_line="true", commit_msg="m", commit_msg_file="f").validate()

    def test_frozen(self):
        cfg = BulkRunConfig(cmd_line="true", commit_msg="m")
        with pytest.raises(Exception):
            cfg.dry_run = True


class TestConfigFile:
    def test_missing_default_file_is_fine(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "DEFAULT_CONFIG_FILE", str(tmp_path / "nope.yaml"))
        assert load_config_file() == {}

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config_file(str(tmp_path / "nope.yaml"))

    def test_reads_known_keys(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text("clone_base_dir: ~/clones\nhost: ghe.example.com\nverify_ssl: false\nmystery: 1\n")

        settings = load_config_file(str(path))

        assert settings["host"] == "ghe.example.com"
        assert settings["verify_ssl"] is False
        assert not settings["clone_base_dir"].startswith("~")
        assert "mystery" not in settings
        assert "Ignoring unknown key 'mystery'" in caplog.text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config_file(str(path)) == {}

    @pytest.mark.parametrize("value", ['"false"', "'no'", "0"])
    def test_verify_ssl_must_be_boolean(self, tmp_path, value):
        path = tmp_path / "config.yaml"
        path.write_text(f"verify_ssl: {value}\n")
        with pytest.raises(ConfigurationError, match="verify_ssl"):
            load_config_file(str(path))

    @pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
    def test_bad_documents(self, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            load_config_file(str(path))

"""
Unit tests for configuration loading.

Tests multi-layer config merging, environment variable overrides,
XDG directory handling and model validation.
"""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from gitsync.core.config import (
    AuthConfig,
    ExecHookConfig,
    HookRetryConfig,
    SubmodulePolicy,
    SyncConfig,
    SyncTarget,
    WebhookConfig,
    default_link_name,
    get_project_config_path,
    get_user_config_path,
    load_config,
)
from gitsync.core.config.env import load_layered_env
from gitsync.core.config.loader import (
    apply_env_overrides,
    deep_merge,
    get_xdg_config_home,
    load_json_file,
)

# ==============================================================================
# Helper Functions Tests
# ==============================================================================


class TestDeepMerge:
    """Test the deep_merge helper function."""

    def test_nested_merge(self):
        base = {"a": 1, "b": {"x": 10, "y": 20}}
        override = {"b": {"y": 30, "z": 40}, "c": 3}
        assert deep_merge(base, override) == {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}

    def test_lists_are_replaced(self):
        assert deep_merge({"hooks": [1, 2]}, {"hooks": [3]}) == {"hooks": [3]}

    def test_does_not_mutate_inputs(self):
        base = {"target": {"ref": "HEAD"}}
        deep_merge(base, {"target": {"ref": "main"}})
        assert base == {"target": {"ref": "HEAD"}}


class TestLoadJsonFile:
    """Test JSON file loading."""

    def test_load_existing_file(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"period_seconds": 5}))
        assert load_json_file(config_file) == {"period_seconds": 5}

    def test_load_nonexistent_file(self, tmp_path):
        assert load_json_file(tmp_path / "nonexistent.json") is None

    def test_load_invalid_json_logs_warning(self, tmp_path, caplog):
        config_file = tmp_path / "invalid.json"
        config_file.write_text("{ invalid json }")

        assert load_json_file(config_file) is None
        assert "Failed to parse" in caplog.text

    def test_load_non_object(self, tmp_path):
        config_file = tmp_path / "list.json"
        config_file.write_text("[1, 2]")
        assert load_json_file(config_file) is None


class TestPaths:
    """Test config path helpers."""

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
        assert get_xdg_config_home() == tmp_path / "cfg"
        assert get_user_config_path() == tmp_path / "cfg" / "gitsync" / "config.json"

    def test_xdg_default(self, monkeypatch):
        monkeypatch.delenv("XDG_CONFIG_HOME")
        assert get_xdg_config_home() == Path.home() / ".config"

    def test_project_config_path(self, tmp_path):
        assert get_project_config_path(tmp_path) == tmp_path / "gitsync.json"


# ==============================================================================
# Environment Override Tests
# ==============================================================================


class TestApplyEnvOverrides:
    """Test environment variable override logic."""

    def test_scalar_overrides(self, monkeypatch):
        monkeypatch.setenv("GITSYNC_REPO", "https://example.com/app.git")
        monkeypatch.setenv("GITSYNC_REF", "release")
        monkeypatch.setenv("GITSYNC_DEPTH", "0")
        monkeypatch.setenv("GITSYNC_PERIOD", "2.5")
        monkeypatch.setenv("GITSYNC_MAX_FAILURES", "-1")
        monkeypatch.setenv("GITSYNC_ONE_TIME", "true")

        result = apply_env_overrides({})

        assert result["target"] == {
            "repo": "https://example.com/app.git",
            "ref": "release",
            "depth": 0,
        }
        assert result["period_seconds"] == 2.5
        assert result["max_failures"] == -1
        assert result["one_time"] is True

    def test_endpoint_and_checkout_overrides(self, monkeypatch):
        monkeypatch.setenv("GITSYNC_HTTP_BIND", ":2020")
        monkeypatch.setenv("GITSYNC_HTTP_METRICS", "false")
        monkeypatch.setenv("GITSYNC_CHANGE_PERMISSIONS", "0755")
        monkeypatch.setenv("GITSYNC_COOKIE_FILE", "/etc/git-secret/cookie_file")
        monkeypatch.setenv("GITSYNC_GIT", "/usr/local/bin/git")

        result = apply_env_overrides({})

        assert result["http_bind"] == ":2020"
        assert result["http_metrics"] is False
        assert result["change_permissions"] == "0755"
        assert result["cookie_file"] == "/etc/git-secret/cookie_file"
        assert result["git_executable"] == "/usr/local/bin/git"

    def test_one_time_false_values(self, monkeypatch):
        for value in ["false", "0", "no"]:
            monkeypatch.setenv("GITSYNC_ONE_TIME", value)
            assert apply_env_overrides({})["one_time"] is False

    def test_invalid_value_is_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("GITSYNC_PERIOD", "often")

        result = apply_env_overrides({"period_seconds": 30})

        assert result["period_seconds"] == 30
        assert "Invalid GITSYNC_PERIOD" in caplog.text

    def test_credentials_become_env_profile(self, monkeypatch):
        monkeypatch.setenv("GITSYNC_USERNAME", "bot")
        monkeypatch.setenv("GITSYNC_PASSWORD", "s3cret")

        result = apply_env_overrides({"target": {"repo": "https://example.com/app.git"}})

        assert result["auth_profiles"]["env"] == {"username": "bot", "password": "s3cret"}
        assert result["target"]["auth"] == "env"

    def test_explicit_auth_profile_wins(self, monkeypatch):
        monkeypatch.setenv("GITSYNC_USERNAME", "bot")

        result = apply_env_overrides({"target": {"auth": "deploy"}})

        assert result["target"]["auth"] == "deploy"

    def test_hooks_are_appended(self, monkeypatch):
        monkeypatch.setenv("GITSYNC_EXECHOOK_COMMAND", "/bin/reload")
        monkeypatch.setenv("GITSYNC_WEBHOOK_URL", "http://hooks/refresh")

        result = apply_env_overrides({"hooks": [{"type": "exec", "command": "/bin/true"}]})

        assert [h.get("command") or h.get("url") for h in result["hooks"]] == [
            "/bin/true",
            "/bin/reload",
            "http://hooks/refresh",
        ]


# ==============================================================================
# load_config Tests
# ==============================================================================


class TestLoadConfig:
    """Test the full precedence chain."""

    def test_defaults(self, tmp_path):
        config = load_config(
            overrides={"target": {"repo": "https://example.com/app.git"}},
            project_dir=tmp_path,
        )

        assert config.target.ref == "HEAD"
        assert config.target.depth == 1
        assert config.target.submodules == SubmodulePolicy.RECURSIVE
        assert config.period_seconds == 10.0
        assert config.max_failures == 0
        assert config.link_name == "app"
        assert config.hooks == []

    def test_precedence(self, tmp_path, monkeypatch):
        user_config = get_user_config_path()
        user_config.parent.mkdir(parents=True)
        user_config.write_text(
            json.dumps({"target": {"repo": "/srv/user.git"}, "period_seconds": 1, "link": "u"})
        )
        (tmp_path / "gitsync.json").write_text(json.dumps({"period_seconds": 2, "link": "p"}))
        monkeypatch.setenv("GITSYNC_LINK", "e")

        config = load_config(overrides={"link": "cli"}, project_dir=tmp_path)

        assert config.target.repo == "/srv/user.git"
        assert config.period_seconds == 2
        assert config.link == "cli"

    def test_env_beats_project_file(self, tmp_path, monkeypatch):
        (tmp_path / "gitsync.json").write_text(
            json.dumps({"target": {"repo": "/srv/app.git"}, "period_seconds": 2})
        )
        monkeypatch.setenv("GITSYNC_PERIOD", "7")

        assert load_config(project_dir=tmp_path).period_seconds == 7

    def test_explicit_config_path(self, tmp_path):
        explicit = tmp_path / "custom.json"
        explicit.write_text(json.dumps({"target": {"repo": "/srv/app.git", "ref": "v1"}}))

        config = load_config(config_path=explicit, project_dir=tmp_path)

        assert config.target.ref == "v1"

    def test_missing_repo_is_validation_error(self, tmp_path):
        with pytest.raises(ValidationError):
            load_config(project_dir=tmp_path)

    def test_hooks_from_file(self, tmp_path):
        (tmp_path / "gitsync.json").write_text(
            json.dumps(
                {
                    "target": {"repo": "/srv/app.git"},
                    "hooks": [
                        {"type": "exec", "command": "./reload.sh", "args": ["-q"]},
                        {"type": "webhook", "url": "http://x/y", "success_status": -1},
                    ],
                }
            )
        )

        config = load_config(project_dir=tmp_path)

        assert isinstance(config.hooks[0], ExecHookConfig)
        assert isinstance(config.hooks[1], WebhookConfig)
        assert config.hooks[1].success_status == -1


# ==============================================================================
# Model Validation Tests
# ==============================================================================


class TestModels:
    """Test model validators and helpers."""

    def test_default_link_name(self):
        assert default_link_name("https://github.com/example/project.git") == "project"
        assert default_link_name("git@github.com:example/tool.git") == "tool"
        assert default_link_name("/srv/repos/app/") == "app"

    def test_link_must_be_bare_name(self):
        target = SyncTarget(repo="/srv/app.git")
        for bad in ["a/b", "..", ".hidden"]:
            with pytest.raises(ValidationError):
                SyncConfig(target=target, link=bad)

    def test_unknown_auth_profile(self):
        with pytest.raises(ValidationError, match="Unknown auth profile"):
            SyncConfig(target=SyncTarget(repo="/srv/app.git", auth="missing"))

    def test_auth_profile_lookup(self):
        config = SyncConfig(
            target=SyncTarget(repo="/srv/app.git", auth="deploy"),
            auth_profiles={"deploy": AuthConfig(username="bot", password="x")},
        )
        assert config.auth.username == "bot"

    def test_auth_rejects_mixed_credentials(self):
        with pytest.raises(ValidationError):
            AuthConfig(username="bot", ssh_key_file=Path("/keys/id"))
        with pytest.raises(ValidationError):
            AuthConfig(password="a", password_file=Path("/secrets/pw"))

    def test_target_is_immutable(self):
        target = SyncTarget(repo="/srv/app.git")
        with pytest.raises(ValidationError):
            target.ref = "other"

    def test_webhook_status_range(self):
        with pytest.raises(ValidationError):
            WebhookConfig(url="http://x", success_status=42)
        assert WebhookConfig(url="http://x", method="put").method == "PUT"

    def test_max_failures_lower_bound(self):
        with pytest.raises(ValidationError):
            SyncConfig(target=SyncTarget(repo="/srv/app.git"), max_failures=-2)

    def test_change_permissions_parsed_as_octal(self):
        target = SyncTarget(repo="/srv/app.git")
        assert SyncConfig(target=target, change_permissions="0750").change_permissions == 0o750
        assert SyncConfig(target=target, change_permissions="0o775").change_permissions == 0o775
        assert SyncConfig(target=target, change_permissions=0o644).change_permissions == 0o644
        for bad in ["rwx", "0999", 0o17777]:
            with pytest.raises(ValidationError):
                SyncConfig(target=target, change_permissions=bad)

    def test_http_bind_address(self):
        target = SyncTarget(repo="/srv/app.git")
        assert SyncConfig(target=target).http_address is None
        assert SyncConfig(target=target, http_bind=":2020").http_address == ("0.0.0.0", 2020)
        assert SyncConfig(target=target, http_bind="127.0.0.1:80").http_address == (
            "127.0.0.1",
            80,
        )
        for bad in ["2020", "host:", "host:http", ":70000"]:
            with pytest.raises(ValidationError):
                SyncConfig(target=target, http_bind=bad)

    def test_cookie_file_must_exist(self, tmp_path):
        target = SyncTarget(repo="/srv/app.git")
        cookies = tmp_path / "cookies.txt"
        with pytest.raises(ValidationError):
            SyncConfig(target=target, cookie_file=cookies)
        cookies.write_text("")
        assert SyncConfig(target=target, cookie_file=cookies).cookie_file == cookies

    def test_git_executable_must_be_on_path(self):
        target = SyncTarget(repo="/srv/app.git")
        assert SyncConfig(target=target, git_executable="git").git_executable == "git"
        with pytest.raises(ValidationError, match="not found"):
            SyncConfig(target=target, git_executable="no-such-git-binary")


class TestHookRetryConfig:
    """Test backoff calculation."""

    def test_exponential_without_jitter(self):
        retry = HookRetryConfig(backoff_seconds=1.0, multiplier=2.0, jitter_ratio=0.0)
        assert [retry.calculate_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        retry = HookRetryConfig(backoff_seconds=10, max_backoff_seconds=15, jitter_ratio=0)
        assert retry.calculate_delay(5) == 15

    def test_jitter_bounds(self):
        retry = HookRetryConfig(backoff_seconds=3.0, jitter_ratio=0.2)
        for _ in range(50):
            assert 2.4 <= retry.calculate_delay(0) <= 3.6


# ==============================================================================
# .env Loading Tests
# ==============================================================================


class TestLayeredEnv:
    """Test .env layering."""

    def test_project_env_overrides_user_env_not_os(self, tmp_path, monkeypatch):
        user_env = tmp_path / "user.env"
        user_env.write_text("GITSYNC_REF=from-user\nGITSYNC_LINK=user-link\n")
        project_env = tmp_path / "project.env"
        project_env.write_text("GITSYNC_REF=from-project\nGITSYNC_REPO=/from/project\n")
        monkeypatch.setenv("GITSYNC_REPO", "/from/os")
        # Registered so monkeypatch removes what load_layered_env sets
        for name in ("GITSYNC_REF", "GITSYNC_LINK"):
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)

        load_layered_env(user_env_paths=[user_env], project_env_paths=[project_env])

        assert os.environ["GITSYNC_REF"] == "from-project"
        assert os.environ["GITSYNC_LINK"] == "user-link"
        assert os.environ["GITSYNC_REPO"] == "/from/os"

    def test_only_gitsync_keys_are_exported(self, tmp_path, monkeypatch):
        project_env = tmp_path / ".env"
        project_env.write_text("GITSYNC_PERIOD=5\nUNRELATED_SECRET=x\n")
        monkeypatch.setenv("GITSYNC_PERIOD", "")
        monkeypatch.delenv("GITSYNC_PERIOD")
        monkeypatch.delenv("UNRELATED_SECRET", raising=False)

        exported = load_layered_env(project_dir=tmp_path, user_env_paths=[])

        assert exported == {"GITSYNC_PERIOD"}
        assert os.environ["GITSYNC_PERIOD"] == "5"
        assert "UNRELATED_SECRET" not in os.environ

"""Tests for upstream_sync.config_loader -- hierarchical config loading."""

import textwrap

import pytest

from upstream_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)

# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        """A set variable is substituted."""
        monkeypatch.setenv("SYNC_HOME", "/home/me/.claude")
        assert interpolate_env_vars("${SYNC_HOME}") == "/home/me/.claude"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        """An unset variable becomes an empty string."""
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        """The default applies when the variable is unset."""
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert (
            interpolate_env_vars("${UNSET_VAR_XYZ:-Releases}") == "Releases"
        )

    def test_empty_env_var_uses_default(self, monkeypatch):
        """An empty variable also falls back to the default."""
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_literal_dollar_brace_no_closing(self):
        """An unterminated ${ is left as is."""
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        """Substitution reaches nested lists and dicts."""
        monkeypatch.setenv("PATTERN", "MEMORY/")
        data = {"protection": {"patterns": ["${PATTERN}", 3]}}
        assert _interpolate_recursive(data) == {
            "protection": {"patterns": ["MEMORY/", 3]}
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludes:
    """!include tag handling."""

    def test_relative_include(self, tmp_path):
        """Includes resolve relative to the including file."""
        (tmp_path / "protect.yml").write_text("- settings.json\n- CLAUDE.md\n")
        main = tmp_path / "config.yml"
        main.write_text("protection:\n  patterns: !include protect.yml\n")

        data = _load_yaml_with_includes(main)

        assert data == {
            "protection": {"patterns": ["settings.json", "CLAUDE.md"]}
        }

    def test_missing_include(self, tmp_path):
        """A missing include raises."""
        main = tmp_path / "config.yml"
        main.write_text("paths: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="Include file not found"):
            _load_yaml_with_includes(main)

    def test_circular_include(self, tmp_path):
        """Include cycles are detected."""
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME pointed at empty directories."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    return work, home


class TestDiscoverConfigFiles:
    """Search order for config files."""

    def test_nothing_found(self, isolated):
        """No files yields an empty list."""
        assert discover_config_files() == []

    def test_precedence_order(self, isolated, monkeypatch, tmp_path):
        """Files come back highest precedence first."""
        work, home = isolated
        explicit = tmp_path / "explicit.yml"
        explicit.write_text("{}")
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("{}")
        global_cfg = home / ".config" / "upstream_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text("{}")
        monkeypatch.setenv("UPSTREAM_SYNC_CONFIG", str(explicit))

        assert discover_config_files() == [
            explicit.resolve(),
            project,
            global_cfg,
        ]


class TestLoadHierarchicalConfig:
    """Merging discovered config files."""

    def test_zero_config(self, isolated):
        """No files yields an empty dict."""
        assert load_hierarchical_config() == {}

    def test_project_wins_per_top_level_key(self, isolated):
        """Project config replaces user config per top-level key."""
        work, home = isolated
        global_cfg = home / ".config" / "upstream_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            textwrap.dedent(
                """\
                paths:
                  local_dir: /global
                  releases_dir: GlobalReleases
                logging:
                  level: DEBUG
                """
            )
        )
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("paths:\n  local_dir: /project\n")

        merged = load_hierarchical_config()

        assert merged["paths"] == {"local_dir": "/project"}
        assert merged["logging"] == {"level": "DEBUG"}

    def test_extra_path_outranks_discovered(self, isolated, tmp_path):
        """An explicit path has the highest precedence."""
        work, _ = isolated
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("sync:\n  conflict_strategy: skip\n")
        extra = tmp_path / "extra.yml"
        extra.write_text("sync:\n  conflict_strategy: keep-local\n")

        merged = load_hierarchical_config(extra)

        assert merged["sync"] == {"conflict_strategy": "keep-local"}

    def test_missing_extra_path_raises(self, isolated, tmp_path):
        """An explicit path that does not exist raises."""
        with pytest.raises(FileNotFoundError):
            load_hierarchical_config(tmp_path / "missing.yml")

    def test_non_dict_root_skipped(self, isolated, caplog):
        """A file whose root is not a mapping is ignored."""
        work, _ = isolated
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("- just\n- a list\n")

        assert load_hierarchical_config() == {}
        assert "non-dict root" in caplog.text

    def test_env_interpolated_after_merge(self, isolated, monkeypatch):
        """Environment variables are expanded in the merged result."""
        work, _ = isolated
        monkeypatch.setenv("MY_RELEASES", "/srv/rel")
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("paths:\n  releases_dir: ${MY_RELEASES}\n")

        assert load_hierarchical_config()["paths"]["releases_dir"] == "/srv/rel"


class TestEnsureConfig:
    """Starter config creation."""

    def test_creates_starter_in_project_dir(self, isolated):
        """A starter file is written when none exists."""
        work, _ = isolated
        assert resolve_config_path() == work / ".upstream_sync" / "config.yml"

        path = ensure_config()

        assert path == work / ".upstream_sync" / "config.yml"
        assert "upstream-sync configuration" in path.read_text()
        # commented-out starter parses as empty
        assert load_hierarchical_config() == {}

    def test_existing_file_untouched(self, isolated):
        """An existing config file is never overwritten."""
        work, _ = isolated
        project = work / ".upstream_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("sync: {}\n")

        assert ensure_config() == project
        assert project.read_text() == "sync: {}\n"

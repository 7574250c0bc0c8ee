from __future__ import annotations

import re

import pytest

from buildcache.actions import ActionsIO
from buildcache.cli import build_parser, cli_overrides, main
from buildcache.core.config import STATE_CONFIG_KEY


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    for name in ("BUILDCACHE_CACHE_KEY", "INPUT_KEY", "GITHUB_OUTPUT", "GITHUB_ENV", "GITHUB_STATE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITHUB_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("GITHUB_ACTIONS", "false")
    return tmp_path


def test_flags_override_action_inputs():
    ns = build_parser().parse_args(["-v", "restore", "--key", "from-flag", "--path", "target", "--path", "out"])
    actions = ActionsIO({"INPUT_KEY": "from-input", "INPUT_RESTORE-KEY": "v1-", "INPUT_PATHS": "x\ny"})

    out = cli_overrides(ns, actions)

    assert out["cache"]["key"] == "from-flag"
    assert out["cache"]["restore_key"] == "v1-"
    assert out["cache"]["paths"] == ["target", "out"]
    assert out["logging"]["level"] == "verbose"


def test_unset_flags_leave_inputs_alone():
    ns = build_parser().parse_args(["restore"])
    out = cli_overrides(ns, ActionsIO({"INPUT_REQUIRE-FULL-MATCH": "true"}))
    assert out == {"cache": {"require_full_match": "true"}}


def _outputs(path):
    return dict(re.findall(r"^(\S+)<<(?:ghadelimiter_[0-9a-f-]+)\n(.*?)\n", path.read_text(encoding="utf-8"), re.M))


def test_missing_key_is_reported_as_a_miss(clean_env, monkeypatch, capsys):
    output = clean_env / "output"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))

    code = main(["--config", str(clean_env / "none.yaml"), "restore"])

    assert code == 0
    assert "Missing cache key" in capsys.readouterr().err
    assert _outputs(output) == {"partial-hit": "false", "cache-hit": "false"}


def test_invalid_input_is_reported_as_a_miss(clean_env, monkeypatch, capsys):
    output = clean_env / "output"
    state = clean_env / "state"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))
    monkeypatch.setenv("GITHUB_STATE", str(state))
    monkeypatch.setenv("INPUT_CACHE-ON-FAILURE", "yes")

    code = main(["--config", str(clean_env / "none.yaml"), "restore", "--key", "k"])

    assert code == 0
    assert "must be a bool" in capsys.readouterr().err
    assert _outputs(output) == {"partial-hit": "false", "cache-hit": "false"}
    assert not state.exists()


def test_broken_config_file_is_reported_as_a_miss(clean_env, monkeypatch):
    output = clean_env / "output"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))
    config = clean_env / "config.yaml"
    config.write_text("cache: [unclosed", encoding="utf-8")

    assert main(["--config", str(config), "restore", "--key", "k"]) == 0
    assert _outputs(output)["cache-hit"] == "false"


def test_invalid_window_bits_fails_other_commands(clean_env, monkeypatch, capsys):
    monkeypatch.setenv("BUILDCACHE_COMPRESSION_WINDOW_BITS", "40")

    assert main(["--config", str(clean_env / "none.yaml"), "list", str(clean_env / "cache.tgz")]) == 2
    assert "window_bits" in capsys.readouterr().err


def test_restore_miss_writes_outputs_and_state(clean_env, monkeypatch):
    output = clean_env / "output"
    state = clean_env / "state"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))
    monkeypatch.setenv("GITHUB_STATE", str(state))

    code = main(
        [
            "--config",
            str(clean_env / "none.yaml"),
            "-q",
            "restore",
            "--key",
            "v1-linux-abc",
            "--cache-dir",
            str(clean_env / "store"),
        ]
    )

    assert code == 0
    text = output.read_text(encoding="utf-8")
    assert "cache-hit<<" in text
    assert "partial-hit<<" in text
    assert state.read_text(encoding="utf-8").startswith(f"{STATE_CONFIG_KEY}<<")


def test_save_without_state_is_up_to_date(clean_env, monkeypatch, capsys):
    monkeypatch.delenv(f"STATE_{STATE_CONFIG_KEY}", raising=False)

    assert main(["--config", str(clean_env / "none.yaml"), "save"]) == 0
    assert "Cache up-to-date." in capsys.readouterr().out

import sys

import pytest

from config.app_config import AgentSettings
from config.env_loader import get_bool_config, load_env_file
from config.paths import AgentPaths
from core.command_runner import CommandRunner
from core.exceptions import CommandError


@pytest.fixture
def clean_env(monkeypatch):
    for key in ("LOAD_AGENT_LOG_LEVEL", "LOAD_AGENT_LOG_JSON", "LOAD_AGENT_LOCK",
                "LOAD_AGENT_LOCK_FILE", "LOAD_AGENT_CONFIG", "LOAD_AGENT_ENV_FILE"):
        # setenv first so monkeypatch also undoes keys loaded from env files
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_env_file_values_are_loaded(tmp_path, clean_env):
    env_file = tmp_path / "agent.env"
    env_file.write_text("LOAD_AGENT_LOG_LEVEL=DEBUG\nLOAD_AGENT_LOCK=no\nLOAD_AGENT_CONFIG=/srv/agent.json\n")

    settings = AgentSettings.from_env(str(env_file))

    assert settings.logging.level == "DEBUG"
    assert settings.lock.enabled is False
    assert settings.config_path == "/srv/agent.json"


def test_environment_wins_over_env_file(tmp_path, clean_env):
    env_file = tmp_path / "agent.env"
    env_file.write_text("LOAD_AGENT_LOG_LEVEL=DEBUG\n")
    clean_env.setenv("LOAD_AGENT_LOG_LEVEL", "ERROR")

    assert AgentSettings.from_env(str(env_file)).logging.level == "ERROR"


def test_missing_env_file_is_not_an_error(tmp_path, clean_env):
    assert load_env_file(str(tmp_path / "absent.env")) is False


def test_bool_config(clean_env):
    clean_env.setenv("LOAD_AGENT_LOG_JSON", "Off")

    assert get_bool_config("LOAD_AGENT_LOG_JSON", True) is False
    assert get_bool_config("LOAD_AGENT_LOCK", True) is True


def test_explicit_config_candidate_comes_first(clean_env):
    clean_env.setenv("LOAD_AGENT_CONFIG", "/srv/agent.json")

    candidates = AgentPaths.get_config_candidates()

    assert candidates[0] == "/srv/agent.json"
    assert candidates[-1] == "/var/www/shrakvpn/api/config.json"


class TestCommandRunner:
    def test_non_zero_exit_is_a_result(self):
        result = CommandRunner().run([sys.executable, "-c", "import sys; sys.exit(3)"])

        assert result.return_code == 3
        assert not result.success

    def test_output_is_captured(self):
        result = CommandRunner().run([sys.executable, "-c", "print('peer')"])

        assert result.success
        assert result.stdout.strip() == "peer"

    def test_missing_executable_raises(self):
        with pytest.raises(CommandError, match="executable not found"):
            CommandRunner().run(["definitely-not-a-real-binary-4711"])

    def test_timeout_raises(self):
        with pytest.raises(CommandError, match="timed out"):
            CommandRunner(timeout=0.2).run([sys.executable, "-c", "import time; time.sleep(5)"])

import pytest

from markbook.core.enums import MentionSystem, TermAveragePolicy
from markbook.core.exceptions import ConfigurationError
from markbook.main import DEFAULT_CONFIG, MarkbookPlatform, load_config


def test_defaults():
    config = load_config()
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_user_values_override_defaults():
    config = load_config({"pass_mark": 12, "term_average_policy": "weighted"})
    assert config["pass_mark"] == 12
    assert config["mention_system"] == "french"


@pytest.mark.parametrize("config", [
    {"unknown_key": 1},
    {"rank_lock_timeout": -5},
    {"rank_lock_timeout": "soon"},
    {"ledger_store_config": []},
])
def test_invalid_config(config):
    with pytest.raises(ConfigurationError):
        load_config(config)


@pytest.mark.parametrize("config", [
    {"ledger_store_type": "redis"},
    {"mention_system": "german"},
    {"term_average_policy": "median"},
    {"pass_mark": "ten"},
    {"discipline_thresholds": [{"rating": "superb"}]},
    {"ledger_store_type": "file", "ledger_store_config": {"directory": "x"}},
])
def test_invalid_platform_config(config):
    with pytest.raises(ConfigurationError):
        MarkbookPlatform(dict(config, log_level="WARNING"))


def test_settings_follow_config():
    platform = MarkbookPlatform({"mention_system": "english", "term_average_policy": "weighted",
                                 "pass_mark": 12, "log_level": "WARNING"})
    assert platform.settings.get_mention_system() == MentionSystem.ENGLISH
    assert platform.settings.get_term_average_policy() == TermAveragePolicy.WEIGHTED
    assert platform.settings.get_pass_mark() == 12.0


def test_file_ledger_config(tmp_path):
    platform = MarkbookPlatform({"ledger_store_type": "file",
                                 "ledger_store_config": {"base_path": str(tmp_path)},
                                 "log_level": "WARNING"})
    assert platform._ledger_store.get_all_streams() == []

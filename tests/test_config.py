import json

from loguru import logger

from imgx import config
from imgx.logger import setup_logging, tagged_logger


def test_missing_config_uses_defaults(tmp_path):
    assert config.load_user_config(tmp_path / 'none.json') == config.USER_CONFIG_DEFAULTS


def test_broken_config_uses_defaults(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('[1, 2', encoding='utf-8')
    assert config.load_user_config(path) == config.USER_CONFIG_DEFAULTS


def test_config_values_are_coerced(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'debounce_ms': -5, 'max_workers': 0, 'theme': 'dark'}), encoding='utf-8')
    loaded = config.load_user_config(path)
    assert loaded['debounce_ms'] == 0
    assert loaded['max_workers'] == 1
    assert 'theme' not in loaded


def test_non_numeric_config_falls_back(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'debounce_ms': 'soon'}), encoding='utf-8')
    assert config.load_user_config(path)['debounce_ms'] == config.DEBOUNCE_MS


def test_setup_logging_writes_file(tmp_path, monkeypatch):
    log_file = tmp_path / 'logs' / 'imgx.log'
    monkeypatch.setattr(config, 'LOG_FILE', log_file)
    setup_logging(verbose=True)
    logger.debug("debug line")
    logger.remove()
    assert 'debug line' in log_file.read_text(encoding='utf-8')


def test_tagged_logger_prefixes_messages():
    received = []
    sink_id = logger.add(received.append, format="{message}", level="DEBUG")
    try:
        tagged_logger('run#3').warning("slow stage")
        logger.info("untagged")
    finally:
        logger.remove(sink_id)
    assert [line.strip() for line in received] == ["[run#3] slow stage", "untagged"]

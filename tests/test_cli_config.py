"""Tests for CLI configuration module."""

import json
import pytest
from cli.config import Config
from sync.options import SyncOptions


def test_config_creates_default_file(tmp_path):
    """Test that config file is created with defaults if missing."""
    config_path = tmp_path / '.deltadrive' / 'config.json'
    config = Config(config_path)

    assert config_path.exists()

    assert config.data['server_port'] == 8000
    assert config.data['timeout'] == 30
    assert config.data['max_retries'] == 3
    assert config.data['retry_backoff_multiplier'] == 2
    assert config.data['block_size'] == 4096
    assert config.data['chunk_size'] == 1024 * 1024
    assert config.data['savings_threshold_percent'] == 20.0
    assert 'api_key' not in config.data


def test_config_loads_existing_file(tmp_path):
    """Test loading existing config file."""
    config_path = tmp_path / '.deltadrive' / 'config.json'
    config_path.parent.mkdir(parents=True)

    existing_data = {
        'api_key': 'dd_test123',
        'server_host': 'example.com',
        'server_port': 9000,
    }
    with open(config_path, 'w') as f:
        json.dump(existing_data, f)

    config = Config(config_path)

    assert config.data['api_key'] == 'dd_test123'
    assert config.data['server_host'] == 'example.com'
    assert config.data['server_port'] == 9000

    assert config.data['timeout'] == 30
    assert config.data['max_retries'] == 3


def test_config_save_and_get_api_key(temp_config):
    """Test saving and retrieving API key."""
    assert temp_config.get_api_key() is None

    temp_config.set_api_key('dd_abc123')

    assert temp_config.get_api_key() == 'dd_abc123'

    with open(temp_config.config_path, 'r') as f:
        data = json.load(f)
    assert data['api_key'] == 'dd_abc123'


def test_config_handles_corrupted_file(tmp_path):
    """Test recovery from corrupted config file."""
    config_path = tmp_path / '.deltadrive' / 'config.json'
    config_path.parent.mkdir(parents=True)

    with open(config_path, 'w') as f:
        f.write('{ invalid json content')

    config = Config(config_path)
    assert config.data['server_port'] == 8000

    backup_path = config_path.with_suffix('.json.bak')
    assert backup_path.exists()


def test_config_get_base_url(temp_config):
    """Test base URL construction."""
    temp_config.data['server_host'] = 'example.com'
    temp_config.data['server_port'] = 9000
    assert temp_config.get_base_url() == 'http://example.com:9000'


def test_config_get_retry_config(temp_config):
    """Test retry configuration retrieval."""
    retry_config = temp_config.get_retry_config()

    assert retry_config['max_retries'] == 3
    assert retry_config['retry_backoff_multiplier'] == 2

    temp_config.data['max_retries'] = 5
    temp_config.data['retry_backoff_multiplier'] = 3

    retry_config = temp_config.get_retry_config()
    assert retry_config['max_retries'] == 5
    assert retry_config['retry_backoff_multiplier'] == 3


def test_config_sync_options(temp_config):
    """Stored engine settings become SyncOptions."""
    temp_config.data['savings_threshold_percent'] = 35
    temp_config.data['block_size'] = 1024
    temp_config.data['upload_concurrency'] = 4

    options = temp_config.get_sync_options()

    assert options == SyncOptions(
        block_size=1024,
        chunk_size=1024 * 1024,
        savings_threshold_percent=35.0,
        upload_concurrency=4,
    )


def test_config_rejects_invalid_sync_options(temp_config):
    temp_config.data['block_size'] = 0

    with pytest.raises(ValueError):
        temp_config.get_sync_options()


def test_config_delta_batch_bytes(temp_config):
    assert temp_config.get_delta_batch_bytes() == 4 * 1024 * 1024

    temp_config.data['delta_batch_bytes'] = 1000
    assert temp_config.get_delta_batch_bytes() == 1000


def test_config_directory_created_if_missing(tmp_path):
    """Test that config directory is created if it doesn't exist."""
    config_path = tmp_path / 'nested' / 'deep' / '.deltadrive' / 'config.json'

    assert not config_path.parent.exists()

    Config(config_path)
    assert config_path.parent.exists()
    assert config_path.exists()

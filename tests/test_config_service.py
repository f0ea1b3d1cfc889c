from pathlib import Path

import pytest
import yaml

from dm_mirror.config_service import DEFAULT_PROFILE, ConfigService


def _write(root: Path, profile: str, data: dict) -> None:
    d = root / profile
    d.mkdir(parents=True, exist_ok=True)
    (d / 'config.yaml').write_text(yaml.safe_dump(data), encoding='utf-8')


def test_missing_profile_is_created_from_template(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv('DISCORD_TOKEN', raising=False)
    cfg = ConfigService('fresh', root=tmp_path / 'profiles')
    assert (tmp_path / 'profiles' / 'fresh' / 'config.yaml').exists()
    assert cfg.token() == ''
    assert cfg.channel_id() is None


def test_missing_profile_copies_example_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / 'config.example.yaml').write_text('token: ""\nchannel: "123"\n', encoding='utf-8')
    cfg = ConfigService('fresh', root=tmp_path / 'profiles')
    assert cfg.channel_id() == 123


def test_values_are_read(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / 'profiles', 'work', {
        'token': ' abc ',
        'channel': '987654321',
        'send_retry_attempts': 3,
        'LOG_LEVEL': 'debug',
        'discord': {'intents': {'members': True}},
    })
    cfg = ConfigService('work', root=tmp_path / 'profiles')
    assert cfg.token() == 'abc'
    assert cfg.channel_id() == 987654321
    assert cfg.send_retry_attempts() == 3
    assert cfg.log_level() == 'DEBUG'
    assert cfg.discord_intents() == {'members': True}
    assert cfg.database_path() == tmp_path / 'profiles' / 'work' / 'db.sqlite'


def test_token_falls_back_to_environment(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('DISCORD_TOKEN', 'from-env')
    _write(tmp_path / 'profiles', 'p', {'token': '', 'channel': 1})
    assert ConfigService('p', root=tmp_path / 'profiles').token() == 'from-env'


def test_database_override_is_relative_to_profile(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / 'profiles', 'p', {'database': 'mirror.db'})
    cfg = ConfigService('p', root=tmp_path / 'profiles')
    assert cfg.database_path() == tmp_path / 'profiles' / 'p' / 'mirror.db'


def test_bad_values_fall_back(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / 'profiles', 'p', {'channel': 'general', 'send_retry_attempts': 'lots'})
    cfg = ConfigService('p', root=tmp_path / 'profiles')
    assert cfg.channel_id() is None
    assert cfg.send_retry_attempts() == 1


def test_unsafe_profile_name_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / 'profiles', DEFAULT_PROFILE, {'token': 'OTHER'})
    for name in ('bot.v2', '../etc'):
        with pytest.raises(ValueError):
            ConfigService(name, root=tmp_path / 'profiles')
    # Nothing was created for the rejected names
    assert sorted(p.name for p in (tmp_path / 'profiles').iterdir()) == [DEFAULT_PROFILE]


def test_blank_profile_name_uses_default(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = ConfigService('  ', root=tmp_path / 'profiles')
    assert cfg.profile == DEFAULT_PROFILE
    assert cfg.profile_dir == tmp_path / 'profiles' / DEFAULT_PROFILE

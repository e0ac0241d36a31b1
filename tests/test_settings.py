import json
import logging

import pytest

from sizefit.settings import (
    SETTINGS_FILENAME,
    EngineSettings,
    SearchLimits,
    default_settings_path,
    load_settings,
    save_settings,
    settings_from_dict,
    settings_to_dict,
)


class TestSearchLimits:
    def test_defaults(self):
        limits = SearchLimits()
        assert (limits.min_quality, limits.max_quality) == (10, 95)
        assert limits.max_iterations == 8
        assert limits.scale_decay == pytest.approx(0.85)
        assert not limits.metadata_in_probes

    @pytest.mark.parametrize("kwargs", [
        {'min_quality': 0},
        {'min_quality': 60, 'max_quality': 50},
        {'max_quality': 101},
        {'max_iterations': 0},
        {'scale_decay': 1.0},
        {'scale_decay': 0},
        {'max_scale_steps': -1},
        {'min_dimension': 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SearchLimits(**kwargs)


class TestEngineSettings:
    @pytest.mark.parametrize("kwargs", [
        {'max_workers': 0},
        {'max_batch_size': 0},
        {'min_target_mb': 0},
        {'min_target_mb': 5, 'max_target_mb': 1},
        {'webp_method': 7},
        {'jpeg_subsampling': 3},
        {'png_compress_level': 10},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            EngineSettings(**kwargs)

    def test_dict_round_trip(self):
        settings = EngineSettings(limits=SearchLimits(max_iterations=12), max_workers=2)
        assert settings_from_dict(settings_to_dict(settings)) == settings

    def test_partial_dict_keeps_defaults(self):
        settings = settings_from_dict({'limits': {'max_iterations': 5}})
        assert settings.limits.max_iterations == 5
        assert settings.limits.min_quality == 10
        assert settings.max_batch_size == 10

    def test_unknown_keys_are_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sizefit.settings"):
            settings = settings_from_dict({'colour': 'blue', 'limits': {'speed': 3}})
        assert settings == EngineSettings()
        assert "colour" in caplog.text
        assert "speed" in caplog.text


class TestPersistence:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        settings = EngineSettings(max_batch_size=4, limits=SearchLimits(min_dimension=32))
        assert save_settings(settings, path)
        assert json.loads(path.read_text())['limits']['min_dimension'] == 32
        assert load_settings(path) == settings

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.json") == EngineSettings()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert load_settings(path) == EngineSettings()

    def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2, 3]")
        assert load_settings(path) == EngineSettings()

    def test_out_of_range_value_raises(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({'max_batch_size': 0}))
        with pytest.raises(ValueError):
            load_settings(path)

    @pytest.mark.parametrize("data", [
        {'max_workers': "four"},
        {'max_batch_size': 2.5},
        {'min_target_mb': "0.1"},
        {'limits': {'max_iterations': "8"}},
        {'limits': {'metadata_in_probes': 1}},
        {'limits': [8]},
    ])
    def test_wrong_type_raises_value_error(self, tmp_path, data):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps(data))
        with pytest.raises(ValueError):
            load_settings(path)

    def test_integers_accepted_for_float_fields(self):
        settings = settings_from_dict({'max_target_mb': 20, 'limits': {'scale_decay': 0.5}})
        assert settings.max_target_mb == 20
        assert settings.limits.scale_decay == 0.5

    def test_default_path_follows_working_directory(self, tmp_path, monkeypatch):
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        monkeypatch.chdir(first)
        assert save_settings(EngineSettings(max_batch_size=3))
        monkeypatch.chdir(second)
        assert default_settings_path() == second / SETTINGS_FILENAME
        assert load_settings() == EngineSettings()
        monkeypatch.chdir(first)
        assert load_settings().max_batch_size == 3

"""
tests/test_config.py — YAML configuration loader
=================================================
"""

from __future__ import annotations

import pytest

from itinerary.config import DEFAULT_PROFILE_API_URL, load_config
from itinerary.constants import MAX_UPVOTES_PER_JAM

MINIMAL = """\
community_name: Itinerary
frontend_url: https://itinerary.test/
backend_url: https://api.itinerary.test
"""


@pytest.fixture
def write_config(tmp_path):
    def _write(text: str):
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class TestLoadConfig:
    def test_minimal_file_uses_defaults(self, write_config):
        cfg = load_config(write_config(MINIMAL))
        assert cfg.community_name == "Itinerary"
        assert cfg.frontend_url == "https://itinerary.test"
        assert cfg.profile_api_url == DEFAULT_PROFILE_API_URL
        assert cfg.max_upvotes_per_jam == MAX_UPVOTES_PER_JAM
        assert cfg.bootstrap_admins == ()

    def test_overrides(self, write_config):
        cfg = load_config(write_config(MINIMAL + (
            "project_api_url: https://projects.test/v3/\n"
            "max_upvotes_per_jam: 5\n"
            "jam_page_size: 10\n"
            "bootstrap_admins: [root, Alice]\n"
        )))
        assert cfg.project_api_url == "https://projects.test/v3"
        assert cfg.max_upvotes_per_jam == 5
        assert cfg.jam_page_size == 10
        assert cfg.bootstrap_admins == ("root", "Alice")

    def test_env_var_points_at_file(self, write_config, monkeypatch):
        monkeypatch.setenv("ITINERARY_CONFIG", str(write_config(MINIMAL)))
        assert load_config().backend_url == "https://api.itinerary.test"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, write_config):
        with pytest.raises(KeyError):
            load_config(write_config("community_name: Itinerary\n"))

    @pytest.mark.parametrize("key", ["max_upvotes_per_jam", "jam_page_size"])
    def test_non_positive_limits_rejected(self, write_config, key):
        with pytest.raises(ValueError, match=key):
            load_config(write_config(MINIMAL + f"{key}: 0\n"))

    def test_config_is_frozen(self, write_config):
        cfg = load_config(write_config(MINIMAL))
        with pytest.raises(AttributeError):
            cfg.community_name = "Other"

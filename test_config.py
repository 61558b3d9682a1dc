"""Tests for watchlist configuration."""

import json
import logging
from datetime import date

import pytest
import yaml

from pkgmonth.config import (
    WatchlistConfig,
    default_config,
    import_packages_from_file,
    load_config,
    load_packages_from_file,
    parse_start_year,
    resolve_start_year,
    save_settings,
)
from pkgmonth.db import add_package, get_watchlist
from pkgmonth.errors import ConfigInvalid

TODAY = date(2017, 6, 15)


class TestStartYear:
    """Tests for start year parsing and fallback."""

    def test_valid_year(self):
        assert resolve_start_year(2016, TODAY) == 2016
        assert resolve_start_year("2016", TODAY) == 2016

    def test_missing_year_uses_current_year(self):
        assert resolve_start_year(None, TODAY) == 2017
        assert resolve_start_year("", TODAY) == 2017

    def test_unparsable_year_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pkgmonth"):
            assert resolve_start_year("last year", TODAY) == 2017
        assert "not a year" in caplog.text

    def test_year_before_2000_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pkgmonth"):
            assert resolve_start_year(1999, TODAY) == 2017
        assert "before 2000" in caplog.text

    def test_parse_start_year_raises(self):
        with pytest.raises(ConfigInvalid):
            parse_start_year("abc")
        with pytest.raises(ConfigInvalid):
            parse_start_year(1990)


class TestLoadConfig:
    """Tests for building the configuration from the store."""

    def test_default_config(self):
        config = default_config()
        assert config.packages == frozenset()
        assert config.source == "npm"
        assert isinstance(config.start_year, int)

    def test_load_config_from_store(self, db_conn):
        add_package(db_conn, "left-pad")
        add_package(db_conn, "express")
        save_settings(db_conn, start_year=2016, source="pypi")

        config = load_config(db_conn)

        assert config == WatchlistConfig(
            packages=frozenset({"left-pad", "express"}),
            start_year="2016",
            source="pypi",
        )

    def test_load_config_defaults(self, db_conn):
        config = load_config(db_conn)
        assert config.packages == frozenset()
        assert config.source == "npm"

    def test_save_unknown_source(self, db_conn):
        with pytest.raises(ConfigInvalid):
            save_settings(db_conn, source="cargo")


class TestPackageFiles:
    """Tests for loading watchlists from files."""

    def test_yaml_with_start_year(self, tmp_path):
        path = tmp_path / "packages.yml"
        path.write_text(yaml.dump({"packages": ["left-pad", "express"], "start_year": 2016}))

        assert load_packages_from_file(str(path)) == (["left-pad", "express"], 2016)

    def test_yaml_published_key(self, tmp_path):
        path = tmp_path / "packages.yaml"
        path.write_text(yaml.dump({"published": ["package-a"]}))

        assert load_packages_from_file(str(path)) == (["package-a"], None)

    def test_json_list(self, tmp_path):
        path = tmp_path / "packages.json"
        path.write_text(json.dumps(["a", "b"]))

        assert load_packages_from_file(str(path)) == (["a", "b"], None)

    def test_plain_text(self, tmp_path):
        path = tmp_path / "packages.txt"
        path.write_text("# watched\nleft-pad\n\n  express  \n")

        assert load_packages_from_file(str(path)) == (["left-pad", "express"], None)

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_packages_from_file("/nonexistent/packages.yml")

    def test_import_into_store(self, db_conn, tmp_path):
        add_package(db_conn, "express")
        path = tmp_path / "packages.yml"
        path.write_text(yaml.dump({"packages": ["left-pad", "express"], "start_year": 2015}))

        assert import_packages_from_file(db_conn, str(path)) == (1, 1)
        assert get_watchlist(db_conn) == ["express", "left-pad"]
        assert load_config(db_conn).start_year == "2015"

import os
import sys
import importlib

import pytest

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_DIR)

from scripts import utils  # noqa: E402


# ---------- Numbered script modules ----------
@pytest.fixture(scope="session")
def encoding_mod():
    return importlib.import_module("scripts.01_transition_encoding")


@pytest.fixture(scope="session")
def features_mod():
    return importlib.import_module("scripts.02_feature_assembly")


@pytest.fixture(scope="session")
def sampling_mod():
    return importlib.import_module("scripts.03_sampling")


@pytest.fixture(scope="session")
def classification_mod():
    return importlib.import_module("scripts.04_classification")


@pytest.fixture(scope="session")
def area_mod():
    return importlib.import_module("scripts.05_area_statistics")


# ---------- Catalogs ----------
@pytest.fixture
def catalog(encoding_mod):
    return encoding_mod.ClassCatalog.from_config()


@pytest.fixture
def water_forest(encoding_mod):
    return encoding_mod.ClassCatalog.from_config({
        1: {"name": "Water", "color": "#0000FF"},
        2: {"name": "Forest", "color": "#008000"},
    })


@pytest.fixture(autouse=True)
def log_to_tmp(tmp_path, monkeypatch):
    """Keep the run log out of the project tree."""
    monkeypatch.setattr(utils, "LOG_PATH", str(tmp_path / "logs" / "test.log"))

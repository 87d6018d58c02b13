import numpy as np
import pytest

from scripts.utils import ConfigurationError


@pytest.fixture
def rasters():
    lulc_2014 = np.array([[1, 2], [3, 3]])
    lulc_2024 = np.array([[1, 5], [3, 4]])
    transition = lulc_2014 * 100 + lulc_2024
    elevation = np.array([[10.0, 20.0], [30.0, 40.0]])
    return lulc_2014, lulc_2024, transition, elevation


def test_year_indicator_marks_changed_pixels(features_mod):
    out = features_mod.year_indicator(np.array([1, 2, 3]), np.array([1, 4, 3]), 2024)
    np.testing.assert_array_equal(out, [0, 2024, 0])


def test_training_stack(features_mod, rasters):
    lulc_2014, lulc_2024, transition, elevation = rasters
    features = features_mod.assemble_training_features(
        lulc_2014, lulc_2024, transition, elevation, 2024)

    assert list(features) == ["start", "end", "transition", "elevation", "year"]
    np.testing.assert_array_equal(features["start"], lulc_2014)
    np.testing.assert_array_equal(features["end"], lulc_2024)
    np.testing.assert_array_equal(features["year"], [[0, 2024], [0, 2024]])
    assert features.shape == (2, 2)
    assert features.stack(["start", "elevation"]).shape == (2, 2, 2)


def test_forecast_stack_has_no_label_and_reuses_last_change(features_mod, rasters):
    lulc_2014, lulc_2024, transition, elevation = rasters
    features = features_mod.assemble_forecast_features(
        lulc_2014, lulc_2024, transition, elevation, 2033)

    assert list(features) == ["start", "transition", "elevation", "year"]
    np.testing.assert_array_equal(features["start"], lulc_2024)
    np.testing.assert_array_equal(features["year"], [[0, 2033], [0, 2033]])


def test_assembly_rejects_misaligned_rasters(features_mod, rasters):
    lulc_2014, lulc_2024, transition, _ = rasters
    with pytest.raises(ConfigurationError):
        features_mod.assemble_training_features(
            lulc_2014, lulc_2024, transition, np.zeros((3, 2)), 2024)

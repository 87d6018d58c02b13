import json
import os

import ee
import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin

from run_analysis import run_pipeline
from scripts.backends import LocalBackend
from scripts.utils import ConfigurationError, EmptyPartitionError

SIZE = 40
TRANSFORM = from_origin(500000, 1000400, 10, 10)
CRS = "EPSG:32643"


def write_tif(path, data, dtype, nodata=None, transform=TRANSFORM):
    profile = dict(driver="GTiff", height=data.shape[0], width=data.shape[1], count=1,
                   dtype=dtype, crs=CRS, transform=transform, nodata=nodata)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype(dtype), 1)
    return str(path)


@pytest.fixture
def scene(tmp_path):
    rng = np.random.default_rng(42)
    lulc_2014 = rng.integers(1, 7, size=(SIZE, SIZE))
    lulc_2024 = lulc_2014.copy()
    # Builtup grows over the right half, forest turns into agriculture in the top rows
    lulc_2024[:, SIZE // 2:][rng.random((SIZE, SIZE // 2)) < 0.4] = 5
    lulc_2024[:5][lulc_2024[:5] == 2] = 3
    elevation = rng.uniform(50, 900, size=(SIZE, SIZE))

    return {
        "lulc_from": write_tif(tmp_path / "lulc_2014.tif", lulc_2014, "uint8", nodata=0),
        "lulc_to": write_tif(tmp_path / "lulc_2024.tif", lulc_2024, "uint8", nodata=0),
        "dem": write_tif(tmp_path / "srtm.tif", elevation, "float32"),
        "tmp": tmp_path,
    }


def test_local_pipeline_end_to_end(scene, encoding_mod, catalog):
    backend = LocalBackend(catalog, scene["lulc_from"], scene["lulc_to"], scene["dem"])
    encoder = encoding_mod.TransitionEncoder(catalog)
    out = scene["tmp"] / "out"

    summary = run_pipeline(backend, encoder, {"n_points": 50, "n_trees": 10}, str(out))

    assert summary["backend"] == "local"
    assert summary["years"] == [2014, 2024, 2033]
    assert summary["n_training"] > 0 and summary["n_validation"] > 0
    assert 0.0 <= summary["overall_accuracy"] <= 1.0

    for name in ["transition_catalog.json", "transition_areas.json", "classification_metrics.json",
                 "area_by_class.csv", "area_by_class.json", "change_rates.json", "samples.csv",
                 "analysis_summary.json", "lulc_prediction_2033.tif"]:
        assert (out / name).exists(), name

    with open(out / "transition_catalog.json") as f:
        assert len(json.load(f)) == 36

    # every epoch covers the whole 40x40 grid of 10 m pixels = 16 ha
    areas = pd.read_csv(out / "area_by_class.csv")
    totals = areas.groupby("year")["area"].sum()
    assert list(totals.index) == [2014, 2024, 2033]
    assert totals.to_numpy() == pytest.approx([16.0, 16.0, 16.0])

    with rasterio.open(out / "lulc_prediction_2033.tif") as src:
        prediction = src.read(1)
    assert set(np.unique(prediction)) <= set(catalog.codes)

    samples = pd.read_csv(out / "samples.csv")
    assert len(samples) == summary["n_training"] + summary["n_validation"]
    assert (samples.loc[samples.partition == "train", "random"] <= 0.8).all()
    assert (samples.loc[samples.partition == "test", "random"] > 0.8).all()

    assert summary["prediction"] == [str(out / "lulc_prediction_2033.tif")]
    assert all(p.startswith(str(out)) and os.path.exists(p) for p in summary["figures"])
    assert not [p for p in os.listdir(scene["tmp"]) if p.startswith(".lulc_run_")]


def test_local_backend_rejects_misaligned_dem(scene, catalog):
    shifted = from_origin(500010, 1000400, 10, 10)
    dem = write_tif(scene["tmp"] / "dem_shifted.tif", np.ones((SIZE, SIZE)), "float32",
                    transform=shifted)
    backend = LocalBackend(catalog, scene["lulc_from"], scene["lulc_to"], dem)
    backend.load_epochs()
    with pytest.raises(ConfigurationError):
        backend.load_elevation()


def test_local_backend_rejects_codes_outside_catalog(scene, catalog):
    bad = np.full((SIZE, SIZE), 8)
    path = write_tif(scene["tmp"] / "bad.tif", bad, "uint8", nodata=0)
    backend = LocalBackend(catalog, scene["lulc_from"], path, scene["dem"])
    with pytest.raises(ConfigurationError):
        backend.load_epochs()


# ---------- Failed runs leave no output ----------
@pytest.fixture
def single_stratum(tmp_path, catalog):
    lulc = np.full((SIZE, SIZE), 2)
    return LocalBackend(
        catalog,
        write_tif(tmp_path / "a.tif", lulc, "uint8", nodata=0),
        write_tif(tmp_path / "b.tif", lulc, "uint8", nodata=0),
        write_tif(tmp_path / "dem.tif", np.ones((SIZE, SIZE)), "float32"),
    )


def assert_no_output(out):
    assert not out.exists() or os.listdir(out) == []
    # the staging directory is removed as well
    assert not [p for p in os.listdir(out.parent) if p.startswith(".lulc_run_")]


def test_empty_partition_leaves_no_output(single_stratum, encoding_mod, catalog, tmp_path):
    out = tmp_path / "out"
    # one stratum and one point: one of the two partitions is always empty
    with pytest.raises(EmptyPartitionError):
        run_pipeline(single_stratum, encoding_mod.TransitionEncoder(catalog),
                     {"n_points": 1}, str(out))
    assert_no_output(out)


class TimedOutForest:
    def train(self, records, target, predictors):
        raise ee.EEException("Computation timed out.")


class TimedOutBackend(LocalBackend):
    def classifier(self, n_trees, seed=0):
        return TimedOutForest()


def test_backend_errors_propagate_and_leave_no_output(scene, encoding_mod, catalog):
    backend = TimedOutBackend(catalog, scene["lulc_from"], scene["lulc_to"], scene["dem"])
    out = scene["tmp"] / "out"
    with pytest.raises(ee.EEException, match="timed out"):
        run_pipeline(backend, encoding_mod.TransitionEncoder(catalog),
                     {"n_points": 50, "n_trees": 5}, str(out))
    assert_no_output(out)


def test_previous_outputs_survive_a_failed_run(scene, encoding_mod, catalog):
    out = scene["tmp"] / "out"
    out.mkdir()
    (out / "area_by_class.csv").write_text("year,class,LULC,area\n")
    backend = TimedOutBackend(catalog, scene["lulc_from"], scene["lulc_to"], scene["dem"])
    with pytest.raises(ee.EEException):
        run_pipeline(backend, encoding_mod.TransitionEncoder(catalog), {"n_points": 50}, str(out))
    assert os.listdir(out) == ["area_by_class.csv"]
    assert (out / "area_by_class.csv").read_text() == "year,class,LULC,area\n"


def test_invalid_threshold_fails_before_loading(scene, encoding_mod, catalog):
    backend = LocalBackend(catalog, scene["lulc_from"], scene["lulc_to"], scene["dem"])
    out = scene["tmp"] / "out"
    with pytest.raises(ValueError):
        run_pipeline(backend, encoding_mod.TransitionEncoder(catalog),
                     {"train_threshold": 1.0}, str(out))
    assert backend.profile is None
    assert_no_output(out)

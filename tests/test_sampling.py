import numpy as np
import pytest

from scripts.utils import DataError, EmptyPartitionError


def record(sampling_mod, random, end=2):
    return sampling_mod.FeatureRecord(start=1, transition=102, elevation=5.0,
                                      year=2024.0, random=random, end=end)


# ---------- Split ----------
def test_split_83_17(sampling_mod):
    values = list(np.linspace(0.0, 0.8, 83)) + list(np.linspace(0.81, 0.99, 17))
    records = [record(sampling_mod, v) for v in values]
    train, test = sampling_mod.split_records(records, 0.8)

    assert len(train) == 83
    assert len(test) == 17
    assert len(train) + len(test) == len(records)
    assert all(r.random <= 0.8 for r in train)
    assert all(r.random > 0.8 for r in test)


def test_split_threshold_value_goes_to_train(sampling_mod):
    train, test = sampling_mod.split_records([record(sampling_mod, 0.8)], 0.8)
    assert len(train) == 1 and not test


@pytest.mark.parametrize("threshold", [0.0, 1.0, 1.5])
def test_split_rejects_degenerate_threshold(sampling_mod, threshold):
    with pytest.raises(ValueError):
        sampling_mod.split_records([], threshold)


def test_report_split_fails_on_empty_partitions(sampling_mod):
    sampling_mod.report_split(10, 2)
    with pytest.raises(EmptyPartitionError):
        sampling_mod.report_split(0, 5)
    with pytest.raises(EmptyPartitionError):
        sampling_mod.report_split(5, 0)


# ---------- Records ----------
def test_from_properties_casts_fields(sampling_mod):
    r = sampling_mod.FeatureRecord.from_properties({
        "start": 3.0, "transition": "304", "elevation": 120, "year": 2024,
        "end": 4, "random": 0.25, "system:index": "0_0",
    })
    assert r == sampling_mod.FeatureRecord(3, 304, 120.0, 2024.0, 0.25, 4)
    assert r.values(["start", "transition"]) == [3, 304]


def test_from_properties_without_end_is_forecast_record(sampling_mod):
    r = sampling_mod.FeatureRecord.from_properties(
        {"start": 1, "transition": 101, "elevation": 1.0, "year": 0, "random": 0.5})
    assert r.end is None
    assert "end" not in r.as_properties()


@pytest.mark.parametrize("props", [
    {"start": 1, "transition": 101, "elevation": 1.0, "year": 0},
    {"start": 1, "transition": None, "elevation": 1.0, "year": 0, "random": 0.1},
    {"start": "x", "transition": 101, "elevation": 1.0, "year": 0, "random": 0.1},
    {"start": 1, "transition": 101, "elevation": 1.0, "year": 0, "random": 1.0},
])
def test_from_properties_rejects_bad_records(sampling_mod, props):
    with pytest.raises(DataError):
        sampling_mod.FeatureRecord.from_properties(props)


# ---------- Stratified sample ----------
@pytest.fixture
def stack(features_mod):
    lulc_from = np.array([[1, 1, 1, 1], [2, 2, 2, 0], [1, 1, 2, 2]])
    lulc_to = np.array([[1, 1, 1, 1], [1, 1, 1, 0], [2, 2, 2, 2]])
    transition = np.where(lulc_from > 0, lulc_from * 100 + lulc_to, 0)
    elevation = np.arange(12, dtype=float).reshape(3, 4)
    elevation[0, 0] = np.nan
    return features_mod.assemble_training_features(
        lulc_from, lulc_to, transition, elevation, 2024)


def test_stratified_sample_caps_each_stratum(sampling_mod, stack):
    records = sampling_mod.stratified_sample(stack, n_points=2, seed=1)
    counts = {}
    for r in records:
        counts[r.transition] = counts.get(r.transition, 0) + 1
    # 101 has 3 valid pixels (one NaN elevation), 201 has 3, 102 has 2, 202 has 2
    assert counts == {101: 2, 102: 2, 201: 2, 202: 2}
    assert all(0.0 <= r.random < 1.0 for r in records)
    assert all(r.end == r.transition % 100 for r in records)


def test_stratified_sample_skips_nodata_and_nan(sampling_mod, stack):
    records = sampling_mod.stratified_sample(stack, n_points=100, seed=0)
    assert len(records) == 10
    assert all(r.transition != 0 for r in records)
    assert all(np.isfinite(r.elevation) for r in records)


def test_stratified_sample_is_reproducible(sampling_mod, stack):
    a = sampling_mod.stratified_sample(stack, n_points=2, seed=7)
    b = sampling_mod.stratified_sample(stack, n_points=2, seed=7)
    assert a == b


def test_records_to_frame_flags_partitions(sampling_mod):
    frame = sampling_mod.records_to_frame(
        [record(sampling_mod, 0.1), record(sampling_mod, 0.2)], [record(sampling_mod, 0.9)])
    assert list(frame["partition"]) == ["train", "train", "test"]
    assert {"start", "transition", "elevation", "year", "end", "random"} <= set(frame.columns)


def test_split_collection_checks_threshold_before_any_request(sampling_mod):
    # the collection is never touched when the threshold is degenerate
    with pytest.raises(ValueError):
        sampling_mod.split_collection(None, 1.0)


def test_random_field_is_independent_of_the_stratum_draw(sampling_mod, stack):
    records = sampling_mod.stratified_sample(stack, n_points=100, seed=3)
    same_stream = sampling_mod.random_column(len(records), 3)
    assert [r.random for r in records] != list(same_stream)

    again = sampling_mod.stratified_sample(stack, n_points=100, seed=3)
    assert [r.random for r in records] == [r.random for r in again]

# tests/metrics/test_metric_set.py

from datetime import datetime, timedelta, timezone

import pytest

from azexporter.metrics.metric_set import MetricSet, SampleKind


def test_add_info_has_value_one():
    metric_set = MetricSet()
    metric_set.add_info({"id": "a"})

    (sample,) = metric_set.samples
    assert sample.kind is SampleKind.INFO
    assert sample.value == 1.0
    assert sample.labels == {"id": "a"}


def test_add_value_is_float():
    metric_set = MetricSet()
    metric_set.add({"id": "a"}, 7)

    (sample,) = metric_set.samples
    assert sample.kind is SampleKind.VALUE
    assert sample.value == 7.0
    assert isinstance(sample.value, float)


def test_add_time_converts_to_epoch_seconds():
    metric_set = MetricSet()
    ts = datetime(2024, 1, 2, 3, 4, 5, 500000, tzinfo=timezone.utc)
    metric_set.add_time({"id": "a"}, ts)

    (sample,) = metric_set.samples
    assert sample.kind is SampleKind.TIMESTAMP
    assert sample.value == pytest.approx(ts.timestamp())
    assert sample.value % 1 == pytest.approx(0.5)


def test_add_time_treats_naive_datetime_as_utc():
    metric_set = MetricSet()
    metric_set.add_time({"id": "naive"}, datetime(2024, 1, 1))
    metric_set.add_time({"id": "aware"}, datetime(2024, 1, 1, 1, tzinfo=timezone(timedelta(hours=1))))

    naive, aware = metric_set.samples
    assert naive.value == aware.value == datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()


def test_add_time_accepts_azure_iso_strings():
    metric_set = MetricSet()
    metric_set.add_time({"id": "a"}, "2024-01-01T00:00:00.1234567Z")

    (sample,) = metric_set.samples
    assert sample.value == pytest.approx(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() + 0.123456, abs=1e-5)


def test_label_values_are_stringified():
    metric_set = MetricSet()
    metric_set.add_info({"id": None, "count": 3})

    assert metric_set.samples[0].labels == {"id": "", "count": "3"}


def test_empty_set_is_truthy_but_has_no_samples():
    metric_set = MetricSet()

    assert len(metric_set) == 0
    assert metric_set

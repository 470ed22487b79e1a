"""Tests for instrument families and the Prometheus encoder."""

import threading
import time

import pytest

from logmonitor.core.encoding.prometheus import CONTENT_TYPE, encode_families
from logmonitor.core.instruments import COUNTER, GAUGE, MetricFamily, counter, gauge


class TestMetricFamily:
    @pytest.mark.core
    def test_counter_increments_per_label_set(self) -> None:
        family = counter("lines_total", "Lines", ("source",))

        family.inc({"source": "/a"})
        family.inc({"source": "/a"}, 2)
        family.inc({"source": "/b"})

        assert family.get({"source": "/a"}) == 3.0
        assert family.get({"source": "/b"}) == 1.0
        assert family.get({"source": "/c"}) is None

    @pytest.mark.core
    def test_counter_rejects_negative_steps(self) -> None:
        family = counter("lines_total", "Lines")

        with pytest.raises(ValueError, match="only increase"):
            family.inc(amount=-1)

    @pytest.mark.core
    def test_only_gauges_can_be_set(self) -> None:
        with pytest.raises(ValueError, match="only gauges"):
            counter("lines_total", "Lines").set(1.0)

    @pytest.mark.core
    def test_missing_label_values_raise(self) -> None:
        family = gauge("value", "Value", ("source", "host"))

        with pytest.raises(ValueError, match="host"):
            family.set(1.0, {"source": "/a"})

    @pytest.mark.core
    def test_label_order_of_mapping_does_not_matter(self) -> None:
        family = gauge("value", "Value", ("source", "host"))

        family.set(1.0, {"host": "h", "source": "/a"})
        family.set(2.0, {"source": "/a", "host": "h"})

        assert len(family.samples()) == 1
        assert family.samples()[0].labels == {"source": "/a", "host": "h"}

    @pytest.mark.core
    def test_set_to_current_time(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(time, "time", lambda: 1702300000.0)
        family = gauge("last_seconds", "Last")

        family.set_to_current_time()

        assert family.get() == 1702300000.0

    @pytest.mark.core
    def test_clear_drops_every_series(self) -> None:
        family = gauge("status", "Status", ("source",))
        family.set(1.0, {"source": "/a"})
        family.set(1.0, {"source": "/b"})

        family.clear()
        assert family.samples() == []

    @pytest.mark.core
    def test_unknown_kind_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="kind"):
            MetricFamily("x", "histogram", "X")

    @pytest.mark.core
    def test_concurrent_increments_are_not_lost(self) -> None:
        family = counter("lines_total", "Lines", ("source",))

        def work() -> None:
            for _ in range(1000):
                family.inc({"source": "/a"})

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert family.get({"source": "/a"}) == 8000.0


class TestPrometheusEncoder:
    @pytest.mark.core
    def test_content_type(self) -> None:
        assert CONTENT_TYPE == "text/plain; version=0.0.4; charset=utf-8"

    @pytest.mark.core
    def test_empty_input_encodes_to_empty_string(self) -> None:
        assert encode_families([]) == ""

    @pytest.mark.core
    def test_help_type_and_samples(self) -> None:
        family = counter("errors_total", "Total number of lines matched", ("source",))
        family.inc({"source": "/var/log/app.log"}, 42)

        output = encode_families([family])

        assert output == (
            "# HELP errors_total Total number of lines matched\n"
            "# TYPE errors_total counter\n"
            'errors_total{source="/var/log/app.log"} 42.0\n'
        )

    @pytest.mark.core
    def test_families_are_sorted_by_name(self) -> None:
        b = gauge("b_value", "B")
        a = counter("a_total", "A")

        output = encode_families([b, a])

        assert output.index("a_total") < output.index("b_value")

    @pytest.mark.core
    def test_family_without_series_still_declares_type(self) -> None:
        output = encode_families([gauge("idle_value", "Idle", ("source",))])

        assert "# TYPE idle_value gauge" in output
        assert "idle_value{" not in output

    @pytest.mark.core
    def test_label_values_are_escaped(self) -> None:
        family = gauge("v", "V", ("source",))
        family.set(1.5, {"source": 'a"b\\c\nd'})

        output = encode_families([family])

        assert 'v{source="a\\"b\\\\c\\nd"} 1.5' in output

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("value", "text"),
        [(float("inf"), "+Inf"), (float("-inf"), "-Inf"), (0.25, "0.25"), (-3, "-3.0")],
    )
    def test_value_formatting(self, value: float, text: str) -> None:
        family = gauge("v", "V")
        family.set(value)

        assert encode_families([family]).endswith(f"v {text}\n")

    @pytest.mark.core
    def test_kinds(self) -> None:
        assert counter("c", "C").kind == COUNTER
        assert gauge("g", "G").kind == GAUGE

"""Tests for bandwidth aggregation and publication.

Invariants:
1. Averages are taken over the whole stats table
2. new_bw = advertised * max(mean ratio, filtered ratio)
3. Relays above node_cap * total are written exactly at the cap
4. Every publish advances the version, even when relinking fails
"""

import logging
import os
from collections import Counter

import pytest

from relayscan.aggregation import report
from relayscan.aggregation.aggregator import BandwidthAggregator

TIMESTAMP = 1_700_000_000


@pytest.fixture
def output_path(tmp_path):
    return tmp_path / "v3bw"


@pytest.fixture
def aggregator(output_path):
    return BandwidthAggregator(output_path, node_cap=1.0, clock=lambda: TIMESTAMP + 0.75)


def read_published(path) -> tuple[str, Counter]:
    """Return the header and the multiset of relay lines."""
    lines = path.read_text().splitlines()
    return lines[0], Counter(lines[1:])


class TestReportInitial:
    """Test seeding."""

    def test_seeds_descriptor_bandwidth(self, aggregator, make_relay):
        """Descriptor bandwidth stands in for mean and filtered bandwidth."""
        aggregator.report_initial([make_relay("R1", bandwidth=300, advertised=250)])
        stats = aggregator.relay_stats["R1"]
        assert stats.mean_bandwidth == 300
        assert stats.filtered_bandwidth == 300
        assert stats.advertised_bandwidth == 250
        assert stats.nickname == "nickR1"

    def test_second_call_is_noop(self, aggregator, make_relay):
        """Only the first seeding has effect."""
        assert not aggregator.is_initialized
        aggregator.report_initial([make_relay("R1")])
        assert aggregator.is_initialized

        aggregator.report_initial([make_relay("R2"), make_relay("R1", bandwidth=5)])
        assert set(aggregator.relay_stats) == {"R1"}
        assert aggregator.relay_stats["R1"].mean_bandwidth == 1000

    def test_none_relays_raises(self, aggregator):
        """Seeding without relays is a programming error."""
        with pytest.raises(ValueError):
            aggregator.report_initial(None)


class TestComputeBandwidths:
    """Test redistribution and capping."""

    def test_equal_relays_get_equal_share(self, output_path, make_relay):
        """Identical relays get identical bandwidth and no cap at 1/N."""
        aggregator = BandwidthAggregator(output_path, node_cap=0.25)
        aggregator.report_initial([make_relay(f"R{i}", bandwidth=500, advertised=1000) for i in range(4)])

        capped = aggregator.compute_bandwidths()

        assert capped == []
        assert {s.new_bandwidth for s in aggregator.relay_stats.values()} == {1000}

    def test_seeded_population_keeps_total(self, aggregator, make_relay):
        """Bandwidth is redistributed in proportion to the population mean."""
        aggregator.report_initial(
            [
                make_relay("R1", bandwidth=100, advertised=200),
                make_relay("R2", bandwidth=200, advertised=200),
                make_relay("R3", bandwidth=300, advertised=200),
            ]
        )

        aggregator.compute_bandwidths()

        new = {k: s.new_bandwidth for k, s in aggregator.relay_stats.items()}
        assert new == {"R1": 100, "R2": 200, "R3": 300}
        assert sum(new.values()) == 600

    def test_better_ratio_wins(self, aggregator, make_relay):
        """The filtered ratio is used when it beats the mean ratio."""
        aggregator.report_initial([make_relay("R1", advertised=100), make_relay("R2", advertised=100)])
        aggregator.relay_stats["R1"].mean_bandwidth = 100
        aggregator.relay_stats["R1"].filtered_bandwidth = 300
        aggregator.relay_stats["R2"].mean_bandwidth = 100
        aggregator.relay_stats["R2"].filtered_bandwidth = 100

        aggregator.compute_bandwidths()

        # mean ratio 1.0, filtered ratio 300 / 200 = 1.5
        assert aggregator.relay_stats["R1"].new_bandwidth == 150
        # mean ratio 1.0, filtered ratio 100 / 200 = 0.5
        assert aggregator.relay_stats["R2"].new_bandwidth == 100

    def test_fast_relay_capped(self, output_path, make_relay, caplog):
        """A relay above the cap is clamped and warned about once."""
        aggregator = BandwidthAggregator(output_path, node_cap=0.05)
        relays = [make_relay(f"R{i}", bandwidth=100, advertised=100) for i in range(9)]
        relays.append(make_relay("FAST", bandwidth=100, advertised=10_000))
        aggregator.report_initial(relays)

        with caplog.at_level(logging.WARNING):
            capped = aggregator.compute_bandwidths()

        # total 10900, cap int(10900 * 0.05) = 545
        assert capped == ["FAST"]
        assert aggregator.relay_stats["FAST"].new_bandwidth == 545
        assert aggregator.relay_stats["R0"].new_bandwidth == 100
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "nickFAST" in warnings[0].message

    def test_each_capped_relay_warned(self, output_path, make_relay, caplog):
        """Capping is logged per relay."""
        aggregator = BandwidthAggregator(output_path, node_cap=0.1)
        relays = [make_relay(f"R{i}", bandwidth=100, advertised=10) for i in range(20)]
        relays += [make_relay("F1", advertised=1000), make_relay("F2", advertised=1000)]
        aggregator.report_initial(relays)
        for relay in relays:
            aggregator.relay_stats[relay.identity].mean_bandwidth = 100
            aggregator.relay_stats[relay.identity].filtered_bandwidth = 100

        with caplog.at_level(logging.WARNING):
            capped = aggregator.compute_bandwidths()

        assert sorted(capped) == ["F1", "F2"]
        assert sum("Capping" in r.message for r in caplog.records) == 2

    def test_zero_averages(self, aggregator, make_relay):
        """A population with no bandwidth at all publishes zeros."""
        aggregator.report_initial([make_relay("R1", bandwidth=0, advertised=100)])
        assert aggregator.compute_bandwidths() == []
        assert aggregator.relay_stats["R1"].new_bandwidth == 0

    def test_empty_table(self, aggregator):
        """Nothing to compute on an empty table."""
        assert aggregator.compute_bandwidths() == []


class TestReportMeasurements:
    """Test folding in a slice window."""

    def test_only_window_updated(self, aggregator, make_relay):
        """Relays outside [size*index, size*(index+1)) are ignored."""
        samples = [100, 200, 300, 400, 500]
        relays = [make_relay(f"R{i}", bandwidth=50, samples=samples) for i in range(6)]

        aggregator.report_measurements(relays, slice_size=2, current_slice=1)

        assert set(aggregator.relay_stats) == {"R2", "R3"}
        assert aggregator.relay_stats["R2"].mean_bandwidth == 300
        assert aggregator.relay_stats["R2"].filtered_bandwidth == 400

    def test_under_measured_relays_skipped(self, aggregator, make_relay):
        """Relays below the sample threshold keep their previous entry."""
        relays = [make_relay("R1", bandwidth=50, samples=[10, 20])]
        aggregator.report_initial(relays)

        aggregator.report_measurements(relays, slice_size=1, current_slice=0)

        assert aggregator.relay_stats["R1"].mean_bandwidth == 50

    def test_update_in_place(self, aggregator, make_relay):
        """Re-measuring a relay overwrites its existing entry."""
        relay = make_relay("R1", bandwidth=50)
        aggregator.report_initial([relay])
        entry = aggregator.relay_stats["R1"]
        for sample in [700] * 5:
            relay.record_measurement(sample)

        aggregator.report_measurements([relay], slice_size=1, current_slice=0)

        assert aggregator.relay_stats["R1"] is entry
        assert entry.mean_bandwidth == 700
        assert entry.filtered_bandwidth == 700

    def test_averages_span_whole_table(self, aggregator, make_relay):
        """Unmeasured seeded relays still weigh in the averages."""
        seeded = make_relay("S1", bandwidth=100, advertised=100)
        measured = make_relay("M1", bandwidth=100, advertised=100, samples=[300] * 5)
        aggregator.report_initial([seeded, measured])

        aggregator.report_measurements([measured], slice_size=1, current_slice=0)

        # averages are (100 + 300) / 2 = 200 for both statistics
        assert aggregator.relay_stats["S1"].new_bandwidth == 50
        assert aggregator.relay_stats["M1"].new_bandwidth == 150

    def test_publishes(self, aggregator, output_path, make_relay):
        """Every report ends in a publish."""
        result = aggregator.report_measurements([], slice_size=5, current_slice=0)
        assert result.version == 0
        assert aggregator.version == 1
        assert output_path.is_symlink()

    def test_negative_window_raises(self, aggregator):
        """Window parameters must be non-negative."""
        with pytest.raises(ValueError):
            aggregator.report_measurements([], slice_size=-1, current_slice=0)

    def test_none_relays_raises(self, aggregator):
        """Reporting without a relay list is a programming error."""
        with pytest.raises(ValueError):
            aggregator.report_measurements(None, slice_size=1, current_slice=0)


class TestPublish:
    """Test versioned output and relinking."""

    def test_writes_versioned_file_and_link(self, aggregator, output_path, make_relay):
        """Publish writes <base>.<version> and points <base> at it."""
        aggregator.report_initial([make_relay("R1", bandwidth=100, advertised=100)])

        result = aggregator.publish()

        assert result.version == 0
        assert result.linked
        assert result.relay_count == 1
        assert (output_path.parent / "v3bw.0").is_file()
        assert os.readlink(output_path) == "v3bw.0"

        header, lines = read_published(output_path)
        assert header == str(TIMESTAMP)
        assert lines == Counter(["node_id=$R1 bw=100 nick=nickR1"])

    def test_link_follows_latest_version(self, aggregator, output_path, make_relay):
        """Each publish creates a new version and moves the link."""
        aggregator.report_initial([make_relay("R1")])
        aggregator.publish()
        aggregator.publish()
        result = aggregator.publish()

        assert result.version == 2
        assert aggregator.version == 3
        assert os.readlink(output_path) == "v3bw.2"
        assert (output_path.parent / "v3bw.0").exists()
        assert (output_path.parent / "v3bw.1").exists()

    def test_capped_value_written(self, output_path, make_relay):
        """The file carries the capped value."""
        aggregator = BandwidthAggregator(output_path, node_cap=0.05, clock=lambda: TIMESTAMP)
        relays = [make_relay(f"R{i}", bandwidth=100, advertised=100) for i in range(9)]
        relays.append(make_relay("FAST", bandwidth=100, advertised=10_000))
        aggregator.report_initial(relays)

        result = aggregator.publish()

        _, lines = read_published(output_path)
        assert "node_id=$FAST bw=545 nick=nickFAST" in lines
        assert result.capped == ["FAST"]

    def test_seeded_scenario_lines(self, aggregator, output_path, make_relay):
        """Published lines match the redistributed values regardless of order."""
        aggregator.report_initial(
            [
                make_relay("R3", bandwidth=300, advertised=200),
                make_relay("R1", bandwidth=100, advertised=200),
                make_relay("R2", bandwidth=200, advertised=200),
            ]
        )

        aggregator.publish()

        _, lines = read_published(output_path)
        assert lines == Counter(
            [
                "node_id=$R1 bw=100 nick=nickR1",
                "node_id=$R2 bw=200 nick=nickR2",
                "node_id=$R3 bw=300 nick=nickR3",
            ]
        )

    def test_version_advances_when_relink_fails(self, aggregator, output_path, monkeypatch, caplog):
        """A failed symlink is logged and the version still advances."""

        def fail_symlink(*args, **kwargs):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(report.os, "symlink", fail_symlink)

        with caplog.at_level(logging.WARNING):
            result = aggregator.publish()

        assert not result.linked
        assert result.path is not None
        assert aggregator.version == 1
        assert any("Unable to create symlink" in r.message for r in caplog.records)

    def test_version_advances_when_unlink_fails(self, aggregator, output_path, monkeypatch, caplog):
        """A failed link removal is logged and publishing continues."""
        aggregator.publish()

        def fail_unlink(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(report.os, "unlink", fail_unlink)

        with caplog.at_level(logging.WARNING):
            result = aggregator.publish()

        assert result.version == 1
        assert aggregator.version == 2
        assert any("Unable to remove symlink" in r.message for r in caplog.records)

    def test_version_advances_when_write_fails(self, aggregator, output_path, caplog):
        """An unwritable versioned file is logged and skipped."""
        (output_path.parent / "v3bw.0").mkdir()

        with caplog.at_level(logging.ERROR):
            result = aggregator.publish()

        assert result.path is None
        assert not result.linked
        assert aggregator.version == 1
        assert any("Unable to write" in r.message for r in caplog.records)

        # next publish goes to a fresh version
        assert aggregator.publish().linked
        assert os.readlink(output_path) == "v3bw.1"

    def test_empty_table_writes_header_only(self, aggregator, output_path):
        """With no relays the file holds only the timestamp."""
        aggregator.publish()
        assert output_path.read_text() == f"{TIMESTAMP}\n"

    def test_snapshot(self, aggregator, make_relay):
        """Snapshot reports the last published version."""
        aggregator.report_initial([make_relay("R1", bandwidth=100, advertised=100)])
        aggregator.publish()
        snapshot = aggregator.snapshot()
        assert snapshot.version == 0
        assert [(e.identity, e.bandwidth) for e in snapshot.relays] == [("R1", 100)]

    def test_snapshot_before_publish_raises(self, aggregator, make_relay, output_path):
        """Seeded but unpublished bandwidths are not served as a snapshot."""
        aggregator.report_initial([make_relay("R1", bandwidth=100, advertised=100)])

        with pytest.raises(RuntimeError):
            aggregator.snapshot()
        assert not output_path.exists()


class TestValidation:
    """Test constructor validation."""

    @pytest.mark.parametrize("node_cap", [0, -0.1, 1.5])
    def test_invalid_node_cap(self, output_path, node_cap):
        """node_cap must be in (0, 1]."""
        with pytest.raises(ValueError):
            BandwidthAggregator(output_path, node_cap=node_cap)

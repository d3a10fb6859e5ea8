"""Tests for the /proc/stat CPU time sampler."""

import threading

import pytest

from poolstat.config import SamplerConfig
from poolstat.errors import (
    MalformedCounterRowError,
    MalformedTokenError,
    SourceUnavailableError,
)
from poolstat.sampler.pool import pool_cpu_usage
from poolstat.sampler.procstat import (
    CpuTimeSnapshot,
    CpuTimeStat,
    cpu_usage,
    discover_cpu_count,
    new_cpu_time_stat,
    parse_cpu_rows,
    read_lines,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseCpuRows:
    """Tests for extracting idle/total counters from /proc/stat lines."""

    def test_idle_is_fourth_counter_and_total_is_row_sum(self):
        lines = [
            "cpu  130216 19944 162525 1491240 3784 24749 17773 0 0 0",
            "cpu0 40321 11452 49784 403099 2615 6076 6748 0 0 0",
            "cpu1 26585 2425 36639 151166 404 2533 3541 0 0 0",
            "intr 114930548 113199788 3 0 5 263 0 4",
        ]
        rows = parse_cpu_rows(lines, 2)
        assert rows[0] == (403099, 40321 + 11452 + 49784 + 403099 + 2615 + 6076 + 6748)
        assert rows[1] == (151166, 26585 + 2425 + 36639 + 151166 + 404 + 2533 + 3541)

    def test_aggregate_and_other_rows_are_skipped(self):
        lines = [
            "cpu  1 1 1 1",
            "cpu0 1 2 3 4",
            "ctxt 99",
            "cpu1 5 6 7 8",
        ]
        assert parse_cpu_rows(lines, 2) == [(4, 10), (8, 26)]

    def test_extra_rows_are_ignored(self):
        lines = ["cpu  0 0 0 0", "cpu0 1 1 1 1", "cpu1 2 2 2 2", "cpu2 3 3 3 3"]
        assert parse_cpu_rows(lines, 2) == [(1, 4), (2, 8)]

    def test_too_few_rows(self):
        lines = ["cpu  0 0 0 0", "cpu0 1 1 1 1"]
        with pytest.raises(MalformedCounterRowError):
            parse_cpu_rows(lines, 4)

    def test_too_few_counters(self):
        with pytest.raises(MalformedCounterRowError):
            parse_cpu_rows(["cpu0 1 2 3"], 1)

    def test_strict_policy_rejects_bad_token(self):
        with pytest.raises(MalformedTokenError) as excinfo:
            parse_cpu_rows(["cpu0 1 2 x 4"], 1)
        assert excinfo.value.token == "x"

    def test_strict_is_the_default(self):
        with pytest.raises(MalformedTokenError):
            parse_cpu_rows(["cpu0 1 -2 3 4"], 1)

    def test_lenient_policy_counts_bad_token_as_zero(self, caplog):
        rows = parse_cpu_rows(["cpu0 1 2 x 4", "cpu1 5 6 7 oops"], 2, policy="lenient")
        assert rows == [(4, 7), (0, 18)]
        assert "malformed token" in caplog.text


def test_read_lines_drops_blank_lines(proc_stat):
    proc_stat.write_raw("cpu  1 1 1 1\n\n   \ncpu0 1 1 1 1\n")
    assert read_lines(proc_stat.path) == ["cpu  1 1 1 1", "cpu0 1 1 1 1"]


def test_read_lines_missing_file(tmp_path):
    with pytest.raises(SourceUnavailableError) as excinfo:
        read_lines(tmp_path / "missing")
    assert isinstance(excinfo.value.cause, OSError)


def test_cpu_usage_formula():
    assert cpu_usage(25, 100) == pytest.approx(75.0)
    assert cpu_usage(0, 0) == 0.0


# ---------------------------------------------------------------------------
# CpuTimeStat
# ---------------------------------------------------------------------------

class TestCpuTimeStat:
    """Tests for sampling state transitions."""

    @pytest.mark.parametrize("cpu_count", [1, 2, 8])
    def test_first_sample_bootstraps_with_zero_usage(self, proc_stat, cpu_count):
        proc_stat.write([(1000 + i, 500 * i) for i in range(cpu_count)])
        stat = CpuTimeStat(cpu_count, proc_root=proc_stat.root)
        assert stat.snapshot().bootstrapped is False

        snap = stat.sample()
        assert snap.bootstrapped is True
        assert snap.usage == (0.0,) * cpu_count
        assert snap.delta_idle == (0,) * cpu_count
        assert snap.delta_total == (0,) * cpu_count
        assert snap.cur_idle == tuple(1000 + i for i in range(cpu_count))
        assert snap.prev_idle == snap.cur_idle
        assert snap.timestamp > 0

    def test_second_sample_computes_deltas_and_usage(self, proc_stat):
        stat = CpuTimeStat(2, proc_root=proc_stat.root)
        proc_stat.write([(100, 100), (200, 50)])
        stat.sample()
        proc_stat.write([(110, 190), (230, 70)])
        snap = stat.sample()

        assert snap.prev_idle == (100, 200)
        assert snap.prev_total == (200, 250)
        assert snap.cur_idle == (110, 230)
        assert snap.cur_total == (300, 300)
        assert snap.delta_idle == (10, 30)
        assert snap.delta_total == (100, 50)
        assert snap.usage[0] == pytest.approx(90.0)
        assert snap.usage[1] == pytest.approx(40.0)

    def test_current_becomes_previous(self, proc_stat):
        stat = CpuTimeStat(1, proc_root=proc_stat.root)
        for idle, busy in [(10, 10), (20, 30), (50, 30)]:
            proc_stat.write([(idle, busy)])
            snap = stat.sample()
        assert snap.prev_idle == (20,)
        assert snap.prev_total == (50,)
        assert snap.delta_idle == (30,)
        assert snap.delta_total == (30,)
        assert snap.usage == (0.0,)

    def test_no_elapsed_ticks_reports_zero(self, proc_stat):
        stat = CpuTimeStat(1, proc_root=proc_stat.root)
        proc_stat.write([(10, 10)])
        stat.sample()
        snap = stat.sample()
        assert snap.delta_total == (0,)
        assert snap.usage == (0.0,)

    def test_counter_going_backwards_yields_zero_delta(self, proc_stat):
        stat = CpuTimeStat(2, proc_root=proc_stat.root)
        proc_stat.write([(1000, 1000), (100, 100)])
        stat.sample()
        proc_stat.write([(5, 5), (150, 150)])
        snap = stat.sample()
        assert snap.delta_idle == (0, 50)
        assert snap.delta_total == (0, 100)
        assert snap.usage[0] == 0.0
        assert snap.usage[1] == pytest.approx(50.0)

    def test_unreadable_source_keeps_previous_snapshot(self, proc_stat):
        stat = CpuTimeStat(1, proc_root=proc_stat.root)
        proc_stat.write([(10, 10)])
        stat.sample()
        proc_stat.write([(20, 30)])
        before = stat.sample()

        proc_stat.path.unlink()
        with pytest.raises(SourceUnavailableError):
            stat.sample()
        assert stat.snapshot() is before

        # The next good sample continues from the last good one.
        proc_stat.write([(30, 40)])
        snap = stat.sample()
        assert snap.delta_idle == (10,)
        assert snap.delta_total == (20,)

    def test_malformed_token_fails_whole_sample(self, proc_stat):
        stat = CpuTimeStat(2, proc_root=proc_stat.root)
        proc_stat.write([(10, 10), (10, 10)])
        before = stat.sample()
        proc_stat.write_raw("cpu  0 0 0 0\ncpu0 1 1 1 1\ncpu1 1 1 bad 1\n")
        with pytest.raises(MalformedTokenError):
            stat.sample()
        assert stat.snapshot() is before

    def test_lenient_policy_keeps_sampling(self, proc_stat):
        stat = CpuTimeStat(1, proc_root=proc_stat.root, parse_policy="lenient")
        proc_stat.write_raw("cpu  0 0 0 0\ncpu0 10 0 0 10 junk\n")
        snap = stat.sample()
        assert snap.cur_idle == (10,)
        assert snap.cur_total == (20,)

    def test_missing_rows_is_a_hard_error(self, proc_stat):
        stat = CpuTimeStat(4, proc_root=proc_stat.root)
        proc_stat.write([(1, 1), (1, 1)])
        with pytest.raises(MalformedCounterRowError):
            stat.sample()
        assert stat.snapshot().bootstrapped is False

    def test_invalid_arguments(self, tmp_path):
        with pytest.raises(ValueError):
            CpuTimeStat(0, proc_root=tmp_path)
        with pytest.raises(ValueError):
            CpuTimeStat(1, proc_root=tmp_path, parse_policy="guess")

    def test_snapshot_is_immutable(self):
        snap = CpuTimeSnapshot.empty(2)
        with pytest.raises(AttributeError):
            snap.bootstrapped = True  # type: ignore[misc]

    def test_concurrent_readers_see_whole_intervals(self, proc_stat):
        """Every interval adds the same number of idle and busy ticks, so
        a consistent snapshot always has delta_total == 2 * delta_idle."""
        cpu_count = 4
        stat = CpuTimeStat(cpu_count, proc_root=proc_stat.root)
        proc_stat.write([(0, 0)] * cpu_count)
        stat.sample()

        done = threading.Event()
        failures: list[str] = []

        def reader() -> None:
            while not done.is_set():
                snap = stat.snapshot()
                for i in range(cpu_count):
                    if snap.delta_total[i] != 2 * snap.delta_idle[i]:
                        failures.append(f"cpu{i}: {snap.delta_idle[i]}/{snap.delta_total[i]}")
                usage = pool_cpu_usage(f"0-{cpu_count - 1}", snap)
                if snap.delta_total[0] and usage != pytest.approx(50.0 * cpu_count):
                    failures.append(f"pool usage {usage}")

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        ticks = 0
        try:
            for step in range(200):
                ticks += step % 7 + 1
                proc_stat.write([(ticks, ticks)] * cpu_count)
                stat.sample()
        finally:
            done.set()
            for t in threads:
                t.join()
        assert failures == []


def test_discover_cpu_count():
    assert discover_cpu_count() >= 1


def test_new_cpu_time_stat_uses_configured_count(proc_stat):
    cfg = SamplerConfig(proc_root=str(proc_stat.root), cpu_count=3, parse_policy="lenient")
    stat = new_cpu_time_stat(cfg)
    assert stat.cpu_count == 3
    assert stat.path == proc_stat.path


def test_new_cpu_time_stat_discovers_count(proc_stat):
    stat = new_cpu_time_stat(SamplerConfig(proc_root=str(proc_stat.root)))
    assert stat.cpu_count == discover_cpu_count()


def test_read_lines_undecodable_source(proc_stat):
    proc_stat.path.write_bytes(b"cpu  1 1 1 1\ncpu0 1 1 \xff\xfe 1\n")
    with pytest.raises(MalformedCounterRowError):
        read_lines(proc_stat.path)


def test_undecodable_source_keeps_previous_snapshot(proc_stat):
    stat = CpuTimeStat(1, proc_root=proc_stat.root)
    proc_stat.write([(10, 10)])
    before = stat.sample()
    proc_stat.path.write_bytes(b"cpu  1 1 1 1\ncpu0 1 1 \xff 1\n")
    with pytest.raises(MalformedCounterRowError):
        stat.sample()
    assert stat.snapshot() is before

"""CLI interface for poolstat."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time

from . import __version__
from .config import load_config
from .errors import PoolStatError


def _cmd_serve(args: argparse.Namespace) -> None:
    """Sample CPU time and serve usage metrics until interrupted."""
    cfg = load_config(args.config)

    from .collector.manager import SamplingManager
    from .exporter.local import LocalExporter
    from .exporter.prometheus import PoolUsageCollector, PrometheusExporter
    from .pools import YamlPoolSource
    from .sampler.procstat import new_cpu_time_stat

    stat = new_cpu_time_stat(cfg.sampler)
    pool_source = YamlPoolSource(cfg.pools.path)
    manager = SamplingManager(stat, pool_source, cfg.sampler, cfg.pools)

    exporters = []
    if cfg.local_exporter.enabled:
        exporters.append(LocalExporter(cfg.local_exporter))
    if cfg.otel.enabled:
        from .exporter.otel import OtelExporter
        exporters.append(OtelExporter(cfg.otel))
    for exp in exporters:
        manager.add_sink(exp.export)

    prom = None
    if cfg.prometheus.enabled:
        prom = PrometheusExporter(
            cfg.prometheus,
            PoolUsageCollector(
                stat,
                pool_source,
                policy_name=cfg.pools.policy_name,
                sample_on_scrape=cfg.sampler.sample_on_scrape,
            ),
        )
        prom.serve()

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    manager.start()
    print(f"poolstat running ({stat.cpu_count} cpus, interval={cfg.sampler.interval_seconds}s)")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        manager.stop()
        for exp in exporters:
            exp.shutdown()
        if prom is not None:
            prom.shutdown()
    print("\nStopped.")


def _cmd_sample(args: argparse.Namespace) -> None:
    """Take two samples and print processor and pool usage."""
    cfg = load_config(args.config)

    from rich.console import Console
    from rich.table import Table

    from .collector.publisher import publish
    from .pools import YamlPoolSource
    from .sampler.procstat import new_cpu_time_stat

    stat = new_cpu_time_stat(cfg.sampler)
    stat.sample()
    time.sleep(args.interval)
    snapshot = stat.sample()
    published = publish(snapshot, YamlPoolSource(cfg.pools.path).pools(), cfg.pools.policy_name)

    console = Console()
    table = Table(title=f"CPU usage over {args.interval:.1f}s")
    table.add_column("CPU", justify="right", style="cyan")
    table.add_column("Idle ticks", justify="right")
    table.add_column("Total ticks", justify="right")
    table.add_column("Usage %", justify="right", style="green")
    for t in published.threads:
        table.add_row(
            str(t.cpu_id),
            str(snapshot.delta_idle[t.cpu_id]),
            str(snapshot.delta_total[t.cpu_id]),
            f"{t.usage_percent:.1f}",
        )
    console.print(table)

    if published.pools or published.errors:
        pools = Table(title="Pool usage")
        pools.add_column("Pool", style="magenta")
        pools.add_column("Definition")
        pools.add_column("CPUs")
        pools.add_column("Pods")
        pools.add_column("Usage %", justify="right", style="green")
        for p in published.pools:
            pools.add_row(p.pool_name, p.def_name, p.cpus, p.pod_names, f"{p.usage_percent:.1f}")
        for name, err in published.errors.items():
            pools.add_row(name, "", "", "", f"[red]{err}[/red]")
        console.print(pools)


def _cmd_expand(args: argparse.Namespace) -> None:
    from .sampler.cpuset import expand_cpuset

    print(",".join(expand_cpuset(args.cpuset)))


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"poolstat {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the poolstat CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        prog="poolstat",
        description="Per-processor and per-pool CPU usage metrics",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to poolstat.yaml")
    sub = parser.add_subparsers(dest="command")

    # serve
    serve_p = sub.add_parser("serve", help="Sample CPU time and serve metrics")
    serve_p.set_defaults(func=_cmd_serve)

    # sample
    sample_p = sub.add_parser("sample", help="Print CPU and pool usage over one interval")
    sample_p.add_argument("--interval", type=float, default=1.0, help="Seconds between samples")
    sample_p.set_defaults(func=_cmd_sample)

    # expand
    expand_p = sub.add_parser("expand", help="Expand a cpuset such as 0,2-4")
    expand_p.add_argument("cpuset", help="Compact cpuset string")
    expand_p.set_defaults(func=_cmd_expand)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except PoolStatError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()

"""In-process metrics with Prometheus text exposition."""

from collections import defaultdict
from dataclasses import dataclass, field


def _label_values(names: tuple[str, ...], labels: dict[str, str]) -> tuple[str, ...]:
    return tuple(labels.get(name, "") for name in names)


def _format_labels(names: tuple[str, ...], values: tuple[str, ...]) -> str:
    return ",".join(f'{n}="{v}"' for n, v in zip(names, values))


@dataclass
class Counter:
    """Simple counter metric."""

    name: str
    help: str
    labels: tuple[str, ...] = ()
    _values: dict[tuple, float] = field(default_factory=lambda: defaultdict(float))

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        self._values[_label_values(self.labels, labels)] += amount

    def get(self, **labels: str) -> float:
        return self._values.get(_label_values(self.labels, labels), 0.0)


@dataclass
class Gauge:
    """Simple gauge metric."""

    name: str
    help: str
    labels: tuple[str, ...] = ()
    _values: dict[tuple, float] = field(default_factory=lambda: defaultdict(float))

    def set(self, value: float, **labels: str) -> None:
        self._values[_label_values(self.labels, labels)] = value

    def get(self, **labels: str) -> float:
        return self._values.get(_label_values(self.labels, labels), 0.0)


@dataclass
class Histogram:
    """Histogram metric with predefined buckets."""

    name: str
    help: str
    labels: tuple[str, ...] = ()
    buckets: tuple[float, ...] = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)
    _counts: dict[tuple, dict[float, int]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(int))
    )
    _sums: dict[tuple, float] = field(default_factory=lambda: defaultdict(float))
    _totals: dict[tuple, int] = field(default_factory=lambda: defaultdict(int))

    def observe(self, value: float, **labels: str) -> None:
        label_values = _label_values(self.labels, labels)
        self._sums[label_values] += value
        self._totals[label_values] += 1
        # Buckets are cumulative ("le")
        for bucket in self.buckets:
            if value <= bucket:
                self._counts[label_values][bucket] += 1

    def count(self, **labels: str) -> int:
        return self._totals.get(_label_values(self.labels, labels), 0)


class MetricsRegistry:
    """Registry for all discovery metrics."""

    def __init__(self):
        self.external_api_requests_total = Counter(
            name="external_api_requests_total",
            help="Total number of external API requests",
            labels=("service", "status"),
        )

        self.source_candidates_total = Counter(
            name="discovery_source_candidates_total",
            help="Raw candidates returned per discovery source",
            labels=("source", "media_type"),
        )

        self.source_failures_total = Counter(
            name="discovery_source_failures_total",
            help="Discovery source fetches that failed and contributed nothing",
            labels=("source",),
        )

        self.discovery_runs_total = Counter(
            name="discovery_runs_total",
            help="Total number of discovery runs",
            labels=("media_type", "status"),
        )

        self.discovery_run_duration_seconds = Histogram(
            name="discovery_run_duration_seconds",
            help="Discovery run duration in seconds",
            labels=("media_type",),
        )

        self.discovery_pool_size = Gauge(
            name="discovery_pool_size",
            help="Candidates in the shared discovery pool after the last refresh",
            labels=("media_type",),
        )

    def format_prometheus(self) -> str:
        """Format all metrics in Prometheus exposition format."""
        lines = []

        for metric in self.__dict__.values():
            if isinstance(metric, (Counter, Gauge)):
                kind = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# HELP {metric.name} {metric.help}")
                lines.append(f"# TYPE {metric.name} {kind}")
                for label_values, value in metric._values.items():
                    if metric.labels:
                        labels_str = _format_labels(metric.labels, label_values)
                        lines.append(f"{metric.name}{{{labels_str}}} {value}")
                    else:
                        lines.append(f"{metric.name} {value}")

            elif isinstance(metric, Histogram):
                lines.append(f"# HELP {metric.name} {metric.help}")
                lines.append(f"# TYPE {metric.name} histogram")
                for label_values in metric._sums.keys():
                    labels_str = _format_labels(metric.labels, label_values)
                    prefix = f"{labels_str}," if labels_str else ""
                    for bucket in metric.buckets:
                        count = metric._counts[label_values].get(bucket, 0)
                        lines.append(f'{metric.name}_bucket{{{prefix}le="{bucket}"}} {count}')
                    total = metric._totals[label_values]
                    lines.append(f'{metric.name}_bucket{{{prefix}le="+Inf"}} {total}')
                    lines.append(f"{metric.name}_sum{{{labels_str}}} {metric._sums[label_values]}")
                    lines.append(f"{metric.name}_count{{{labels_str}}} {total}")

        return "\n".join(lines)


# Global metrics registry
metrics = MetricsRegistry()

"""Prometheus text exposition of the metrics registry."""
from __future__ import annotations

from .registry import MetricsRegistry


def _label_text(names: tuple[str, ...], values: tuple[str, ...]) -> str:
    if not values:
        return ""
    pairs = [f'{name}="{value}"' for name, value in zip(names, values)]
    return "{" + ",".join(pairs) + "}"


class PrometheusExporter:
    """Generate Prometheus compatible text format output."""

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    def build_payload(self) -> str:
        lines: list[str] = []
        for metric in self.registry.metrics():
            lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for labels, values in metric.snapshot().items():
                label_text = _label_text(metric.label_names, labels)
                if "value" in values:
                    lines.append(f"{metric.name}{label_text} {values['value']}")
                else:
                    lines.append(f"{metric.name}_count{label_text} {values['count']}")
                    lines.append(f"{metric.name}_sum{label_text} {values['sum']}")
        return "\n".join(lines) + "\n"

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .latency import RuntimeLatency

LOGGER = logging.getLogger("cri_loadgen.charts")

plt.switch_backend("Agg")
sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13

# Pod operations in blue shades, container operations in warm shades
OPERATION_COLORS = {
    "RunPodSandbox": "#2E86AB",
    "StopPodSandbox": "#5FA8D3",
    "RemovePodSandbox": "#1B4965",
    "CreateContainer": "#F18F01",
    "StartContainer": "#F6AE2D",
    "StopContainer": "#C73E1D",
    "RemoveContainer": "#A23B72",
}


def latency_frame(latency: RuntimeLatency) -> pd.DataFrame:
    rows = [
        {"operation": label, "latency_ms": value / 1_000}
        for label, values in latency.items()
        for value in values
    ]
    if not rows:
        return pd.DataFrame(columns=["operation", "latency_ms"])
    return pd.DataFrame(rows)


def render_latency_chart(latency: RuntimeLatency, chart_path: Path) -> Path | None:
    """Render a box plot of latency per runtime operation.

    Returns ``None`` without writing anything when there are no samples.
    """
    df = latency_frame(latency)
    if df.empty:
        LOGGER.warning("No latency data available for latency chart")
        return None

    present = set(df["operation"])
    order = [label for label in RuntimeLatency.operations() if label in present]
    chart_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(12, 6))
    sns.boxplot(
        data=df,
        x="operation",
        y="latency_ms",
        hue="operation",
        order=order,
        hue_order=order,
        palette=OPERATION_COLORS,
        showfliers=False,
        legend=False,
        ax=ax,
    )
    sns.stripplot(
        data=df,
        x="operation",
        y="latency_ms",
        order=order,
        color="black",
        alpha=0.25,
        size=2,
        ax=ax,
    )

    ax.set_title("Runtime Operation Latency", fontweight="bold", pad=15)
    ax.set_xlabel("Operation", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Latency (ms)", fontweight="semibold", labelpad=10)
    ax.tick_params(axis="x", rotation=20)

    fig.savefig(
        chart_path, bbox_inches="tight", facecolor="white", edgecolor="none", dpi=300
    )
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


__all__ = ["latency_frame", "render_latency_chart"]

"""
Tests for the latency distribution chart.
"""

from cri_loadgen.charts import latency_frame, render_latency_chart
from cri_loadgen.latency import RuntimeLatency


def test_latency_frame_converts_to_milliseconds():
    latency = RuntimeLatency()
    latency.run_pod_sandbox.extend([1500.0, 2500.0])

    df = latency_frame(latency)

    assert list(df["operation"]) == ["RunPodSandbox", "RunPodSandbox"]
    assert list(df["latency_ms"]) == [1.5, 2.5]


def test_render_latency_chart(tmp_path):
    latency = RuntimeLatency()
    latency.run_pod_sandbox.extend([1500.0, 2500.0, 1800.0])
    latency.start_container.extend([300.0, 450.0])

    path = render_latency_chart(latency, tmp_path / "charts" / "latency.png")

    assert path == tmp_path / "charts" / "latency.png"
    assert path.stat().st_size > 0


def test_render_latency_chart_without_samples(tmp_path):
    assert render_latency_chart(RuntimeLatency(), tmp_path / "latency.png") is None
    assert not (tmp_path / "latency.png").exists()

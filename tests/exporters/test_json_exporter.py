# tests/exporters/test_json_exporter.py
import json

from kubecostguard.exporters.json_exporter import JSONExporter
from kubecostguard.models.recommendations import CleanupRecommendation, CleanupResourceType, CleanupResult


async def test_json_exporter_writes_model(tmp_path, healthy_snapshot):
    out = tmp_path / "snapshot.json"

    written = await JSONExporter().export(healthy_snapshot(), str(out))

    assert written == str(out)
    content = json.loads(out.read_text(encoding="utf-8"))
    assert len(content["nodes"]) == 3
    assert content["timestamp"].startswith("2026-01-15T12:00:00")


async def test_json_exporter_creates_directories(tmp_path):
    out = tmp_path / "nested" / "dir" / "cleanup.json"
    result = CleanupResult(
        dry_run=True,
        recommendations=[
            CleanupRecommendation(
                resource_type=CleanupResourceType.CONFIG_MAP, namespace="default", name="b", reason="unused"
            )
        ],
    )

    await JSONExporter().export(result, str(out))

    content = json.loads(out.read_text(encoding="utf-8"))
    assert content["recommendations"][0]["resource_type"] == "ConfigMap"
    assert content["dry_run"] is True
    assert content["partial"] is False


async def test_json_exporter_default_filename(tmp_path, monkeypatch, healthy_snapshot):
    monkeypatch.chdir(tmp_path)

    written = await JSONExporter().export(healthy_snapshot())

    assert written == JSONExporter.DEFAULT_FILENAME
    assert (tmp_path / JSONExporter.DEFAULT_FILENAME).exists()


async def test_json_exporter_reports_partial_cleanup(tmp_path):
    out = tmp_path / "cleanup.json"
    kept = CleanupRecommendation(
        resource_type=CleanupResourceType.POD, namespace="batch", name="job-1", reason="stale"
    )
    result = CleanupResult(dry_run=False, recommendations=[kept], failed=[kept])

    await JSONExporter().export(result, str(out))

    content = json.loads(out.read_text(encoding="utf-8"))
    assert content["partial"] is True
    assert content["failed"][0]["name"] == "job-1"

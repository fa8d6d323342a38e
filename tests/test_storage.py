from __future__ import annotations

import pytest

from tweakengine.models import Mode, RunStatus, RunSummary
from tweakengine.storage import StorageManager


def test_run_lifecycle(tmp_path):
    storage = StorageManager(str(tmp_path / "artifacts"))

    summary = storage.create_run("run_1", RunSummary(mode=Mode.EXECUTE), "groups: []\n")

    assert summary.run_id == "run_1"
    assert summary.status == RunStatus.CREATED
    assert storage.run_exists("run_1")
    assert storage.get_all_runs() == ["run_1"]
    assert storage.load_summary("run_1") == summary

    assert storage.delete_run("run_1") is True
    assert storage.run_exists("run_1") is False
    assert storage.delete_run("run_1") is False


def test_template_and_artifacts(tmp_path):
    storage = StorageManager(str(tmp_path))
    storage.create_run("run_1", RunSummary(mode=Mode.ANALYZE), "groups: []\n")

    assert storage.load_template_yaml("run_1") is None
    storage.save_template("run_1", "metadata: {}\ngroups: []\n")

    assert storage.load_template_yaml("run_1") == "metadata: {}\ngroups: []\n"
    artifacts = {a.path: a.type for a in storage.list_artifacts("run_1")}
    assert artifacts == {"input.yaml": "input", "summary.json": "summary", "template.yaml": "template"}

    summary = storage.get_artifact_content("run_1", "summary.json")
    assert summary["mode"] == "analyze"
    assert storage.get_artifact_content("run_1", "input.yaml") == "groups: []\n"


def test_artifact_paths_stay_inside_run(tmp_path):
    storage = StorageManager(str(tmp_path / "artifacts"))
    storage.create_run("run_1", RunSummary(mode=Mode.ANALYZE), "groups: []\n")
    (tmp_path / "secret.txt").write_text("x", encoding="utf-8")

    assert storage.get_artifact_content("run_1", "../../secret.txt") is None
    assert storage.get_artifact_content("run_1", "missing.json") is None


def test_unknown_run(tmp_path):
    storage = StorageManager(str(tmp_path))

    assert storage.load_summary("nope") is None
    assert storage.list_artifacts("nope") == []


@pytest.mark.parametrize("run_id", ["..", ".", "../artifacts", "run_1/..", "nested/run"])
def test_run_ids_outside_base_path_are_rejected(tmp_path, run_id):
    storage = StorageManager(str(tmp_path / "artifacts"))
    storage.create_run("run_1", RunSummary(mode=Mode.ANALYZE), "groups: []\n")
    (tmp_path / "precious.txt").write_text("keep", encoding="utf-8")

    assert storage.is_valid_run_id(run_id) is False
    assert storage.run_exists(run_id) is False
    assert storage.delete_run(run_id) is False
    assert storage.load_summary(run_id) is None
    assert storage.load_template_yaml(run_id) is None
    assert storage.list_artifacts(run_id) == []
    with pytest.raises(ValueError, match="Invalid run ID"):
        storage.save_template(run_id, "groups: []\n")

    assert (tmp_path / "precious.txt").read_text(encoding="utf-8") == "keep"
    assert storage.run_exists("run_1")

"""Tests for the replicate and list_changes command-line scripts."""

import importlib.util
import json
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from changesync.storage.file_store import JsonFileRecordStore

SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"


def load_script(name: str):
    spec = importlib.util.spec_from_file_location(f"script_{name}", SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def replicate_script(monkeypatch):
    module = load_script("replicate")
    monkeypatch.setattr(module, "configure_logging", lambda **kwargs: None)
    with capture_logs():
        yield module


@pytest.fixture
def list_changes_script(monkeypatch):
    module = load_script("list_changes")
    monkeypatch.setattr(module, "configure_logging", lambda **kwargs: None)
    with capture_logs():
        yield module


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
stores:
  model_name: notes
  source_path: "{tmp_path / 'laptop.json'}"
  target_path: "{tmp_path / 'server.json'}"
  source_name: laptop
  target_name: server
replication:
  state_file: "{tmp_path / 'state.json'}"
  max_retries: 0
  retry_base_delay: 0
"""
    )
    return path


def open_stores(tmp_path) -> tuple[JsonFileRecordStore, JsonFileRecordStore]:
    return (
        JsonFileRecordStore(tmp_path / "laptop.json", "notes", name="laptop"),
        JsonFileRecordStore(tmp_path / "server.json", "notes", name="server"),
    )


class TestReplicateScript:
    def test_successful_pass(self, replicate_script, config_file, tmp_path, capsys) -> None:
        laptop, _ = open_stores(tmp_path)
        laptop.create({"id": "1", "title": "a"})

        exit_code = replicate_script.main(["--config", str(config_file), "--json"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["applied"] == 1
        assert output["conflicts"] == []
        _, server = open_stores(tmp_path)
        assert server.read("1") == {"id": "1", "title": "a"}
        state = json.loads((tmp_path / "state.json").read_text())
        assert "laptop->server" in state

    def test_conflicts_exit_with_two(self, replicate_script, config_file, tmp_path) -> None:
        laptop, server = open_stores(tmp_path)
        laptop.create({"id": "1", "title": "mine"})
        server.create({"id": "1", "title": "theirs"})

        exit_code = replicate_script.main(["--config", str(config_file)])

        assert exit_code == 2

    def test_reverse_pass(self, replicate_script, config_file, tmp_path) -> None:
        _, server = open_stores(tmp_path)
        server.create({"id": "9"})

        exit_code = replicate_script.main(["--config", str(config_file), "--reverse"])

        laptop, _ = open_stores(tmp_path)
        assert exit_code == 0
        assert laptop.read("9") == {"id": "9"}

    def test_store_error_exits_with_one(self, replicate_script, config_file, tmp_path) -> None:
        (tmp_path / "laptop.json").write_text("{broken")

        assert replicate_script.main(["--config", str(config_file)]) == 1

    def test_unreadable_state_file_exits_with_one(
        self, replicate_script, config_file, tmp_path
    ) -> None:
        laptop, _ = open_stores(tmp_path)
        laptop.create({"id": "1"})
        (tmp_path / "state.json").write_text("[1, 2]")

        assert replicate_script.main(["--config", str(config_file)]) == 1

    def test_missing_config_exits_with_one(self, replicate_script, tmp_path) -> None:
        assert replicate_script.main(["--config", str(tmp_path / "missing.yaml")]) == 1

    def test_since_arguments(self, replicate_script) -> None:
        both = replicate_script.parse_arguments(["--since", "4"])
        pair = replicate_script.parse_arguments(["--source-since", "1", "--target-since", "2"])

        assert replicate_script.resolve_since(both) == 4
        assert replicate_script.resolve_since(pair) == {"source": 1, "target": 2}
        assert replicate_script.resolve_since(replicate_script.parse_arguments([])) is None

    def test_half_a_pair_is_rejected(self, replicate_script) -> None:
        with pytest.raises(SystemExit):
            replicate_script.parse_arguments(["--source-since", "1"])


class TestListChangesScript:
    def test_lists_changes_as_json(self, list_changes_script, tmp_path, capsys) -> None:
        path = tmp_path / "laptop.json"
        store = JsonFileRecordStore(path, "notes")
        store.create({"id": "1"})
        store.checkpoint()
        store.create({"id": "2"})

        exit_code = list_changes_script.main(
            [str(path), "--model", "notes", "--since", "0", "--json"]
        )

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert [change["model_id"] for change in output] == ["2"]

    def test_filters_by_id(self, list_changes_script, tmp_path, capsys) -> None:
        path = tmp_path / "laptop.json"
        store = JsonFileRecordStore(path, "notes")
        store.create({"id": "1"})
        store.create({"id": "2"})

        list_changes_script.main([str(path), "--model", "notes", "--id", "2"])

        out = capsys.readouterr().out
        assert "create" in out
        assert " 2 " in out
        assert " 1 " not in out

    def test_wrong_model_exits_with_one(self, list_changes_script, tmp_path) -> None:
        path = tmp_path / "laptop.json"
        JsonFileRecordStore(path, "notes").create({"id": "1"})

        assert list_changes_script.main([str(path), "--model", "tasks"]) == 1

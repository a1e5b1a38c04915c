import json

from typer.testing import CliRunner

from msgbridge import __version__
from msgbridge.cli.commands import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_typing_rejects_unknown_state_as_json():
    result = runner.invoke(app, ["typing", "--handle", "+15551234567", "--state", "maybe", "--json"])
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload == {"success": False, "error": "state must be 'on' or 'off'"}


def test_react_rejects_unknown_type():
    result = runner.invoke(app, ["react", "--handle", "+1555", "--guid", "G", "--type", "wave", "--json"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["success"] is False


def test_status_json_without_helper(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "store": {"dbPath": str(tmp_path / "chat.db")},
                "mailbox": {"containerDir": str(tmp_path)},
                "peer": {"helperPaths": [str(tmp_path / "missing.dylib")]},
            }
        ),
        encoding="utf-8",
    )
    result = runner.invoke(app, ["status", "--json", "--config", str(config_path)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["available"] is False
    assert payload["ready"] is False
    assert payload["helper"] is None


def _write_config(tmp_path, **extra):
    config_path = tmp_path / "config.json"
    data = {
        "mailbox": {"containerDir": str(tmp_path)},
        "peer": {"helperPaths": [str(tmp_path / "missing.dylib")]},
        **extra,
    }
    config_path.write_text(json.dumps(data), encoding="utf-8")
    return config_path


def _json_lines(output):
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


async def _no_file_changes():
    return
    yield


def test_watch_streams_json_lines(chat_db, tmp_path, monkeypatch):
    from msgbridge.storage.watcher import MessageWatcher

    monkeypatch.setattr(MessageWatcher, "_file_changes", lambda self: _no_file_changes())
    config_path = _write_config(tmp_path)
    result = runner.invoke(
        app,
        ["watch", "--db", str(chat_db.path), "--config", str(config_path), "--since-rowid", "1", "--chat-id", "1", "--json"],
    )
    assert result.exit_code == 0
    payloads = _json_lines(result.stdout)
    assert [p["id"] for p in payloads] == [2, 5]
    assert payloads[1]["reply_to_guid"] == "GUID-1"


def test_watch_text_with_participant_filter(chat_db, tmp_path, monkeypatch):
    from msgbridge.storage.watcher import MessageWatcher

    monkeypatch.setattr(MessageWatcher, "_file_changes", lambda self: _no_file_changes())
    config_path = _write_config(tmp_path)
    result = runner.invoke(
        app,
        [
            "watch",
            "--db", str(chat_db.path),
            "--config", str(config_path),
            "--since-rowid", "0",
            "--participants", "friend@example.com,nobody@example.com",
        ],
    )
    assert result.exit_code == 0
    assert "[recv] friend@example.com: group hello" in result.stdout
    assert "hi there" not in result.stdout


def test_watch_rejects_bad_debounce():
    result = runner.invoke(app, ["watch", "--debounce", "soon", "--json"])
    assert result.exit_code == 1
    assert json.loads(result.stdout) == {"success": False, "error": "invalid --debounce: soon"}


def test_watch_typing_needs_helper(chat_db, tmp_path):
    config_path = _write_config(tmp_path)
    result = runner.invoke(
        app, ["watch", "--db", str(chat_db.path), "--config", str(config_path), "--typing", "--json"]
    )
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["success"] is False
    assert "helper peer is unavailable" in payload["error"]


def test_watchdog_status_json(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    config_path = _write_config(tmp_path, watchdog={"launchAgentsDir": str(tmp_path / "LaunchAgents")})
    result = runner.invoke(app, ["watchdog", "--status", "--json", "--config", str(config_path)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["installed"] is False
    assert payload["launch_agent_path"] == str(tmp_path / "LaunchAgents" / "com.msgbridge.watchdog.plist")
    assert payload["log_path"].endswith("watchdog.log")

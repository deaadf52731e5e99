"""Tests for the actor directory (identities and privilege mirror)."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from serverpilot.directory.actors import Actor, ActorDirectory, OpGrant
from serverpilot.errors import ActorResolutionError

UUID = "069a79f4-44e9-4726-a5be-fca90e38aaf5"


class TestResolve:
    def test_cached(self) -> None:
        directory = ActorDirectory()
        assert directory.resolve("Steve") is directory.resolve("Steve")

    @pytest.mark.parametrize("name", ["ab", "this_name_is_way_too_long", "bad name", ""])
    def test_invalid_name(self, name: str) -> None:
        with pytest.raises(ActorResolutionError):
            ActorDirectory().resolve(name)

    def test_selector(self) -> None:
        actor = ActorDirectory(lambda name: UUID).resolve("@")
        assert actor.is_selector
        assert actor.uuid is None

    def test_lookup_supplies_uuid(self) -> None:
        assert ActorDirectory(lambda name: UUID).resolve("Steve").uuid == UUID

    def test_lookup_unknown(self) -> None:
        with pytest.raises(ActorResolutionError):
            ActorDirectory(lambda name: None).resolve("Steve")

    def test_lookup_failure_wrapped(self) -> None:
        def lookup(name: str) -> str:
            raise ConnectionError("identity service down")

        with pytest.raises(ActorResolutionError) as info:
            ActorDirectory(lookup).resolve("Steve")
        assert isinstance(info.value.__cause__, ConnectionError)

    def test_remember(self) -> None:
        directory = ActorDirectory()
        directory.remember("Steve", UUID)
        assert directory.resolve("Steve") == Actor("Steve", UUID)
        assert [a.name for a in directory.known()] == ["Steve"]


class TestPrivileges:
    def test_op_and_deop(self) -> None:
        directory = ActorDirectory()
        steve = Actor("Steve")
        directory.set_opped("main", steve, True)
        assert directory.is_opped("main", steve)
        assert not directory.is_opped("other", steve)
        assert directory.opped("main") == ["Steve"]
        assert directory.pending("main") == {}
        directory.set_opped("main", steve, False)
        assert not directory.is_opped("main", steve)

    def test_non_default_grant_queued(self) -> None:
        directory = ActorDirectory()
        steve = Actor("Steve")
        directory.set_opped("main", steve, True, level=2)
        assert directory.pending("main") == {"Steve": OpGrant(2, False)}
        directory.set_opped("main", steve, False)
        assert directory.pending("main") == {}

    def test_ban_and_pardon(self) -> None:
        directory = ActorDirectory()
        griefer = Actor("Griefer")
        directory.set_banned("main", griefer, True, "Griefing spawn")
        assert directory.is_banned("main", griefer)
        assert directory.ban_reason("main", griefer) == "Griefing spawn"
        directory.set_banned("main", griefer, False)
        assert not directory.is_banned("main", griefer)

    def test_whitelist(self) -> None:
        directory = ActorDirectory()
        steve = Actor("Steve")
        directory.set_whitelisted("main", steve, True)
        assert directory.is_whitelisted("main", steve)
        directory.set_whitelisted("main", steve, False)
        assert not directory.is_whitelisted("main", steve)


class TestFiles:
    def _write(self, path: Path, records: list[dict]) -> None:
        path.write_text(json.dumps(records), encoding="utf-8")

    def test_load_privileges(self, tmp_path: Path) -> None:
        self._write(tmp_path / "ops.json", [{"name": "Alex", "level": 3, "bypassesPlayerLimit": True}])
        self._write(tmp_path / "banned-players.json", [{"name": "Griefer", "reason": "Banned by an operator."}])
        self._write(tmp_path / "whitelist.json", [{"name": "Steve"}])

        directory = ActorDirectory()
        directory.load_privileges("main", tmp_path)

        assert directory.is_opped("main", Actor("Alex"))
        assert directory.ban_reason("main", Actor("Griefer")) == "Banned by an operator."
        assert directory.is_whitelisted("main", Actor("Steve"))
        assert directory.pending("main") == {}

    def test_missing_or_broken_files_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "ops.json").write_text("{not json", encoding="utf-8")
        directory = ActorDirectory()
        directory.load_privileges("main", tmp_path)
        assert directory.opped("main") == []

    def test_sync_rewrites_matching_records(self, tmp_path: Path) -> None:
        ops = tmp_path / "ops.json"
        self._write(ops, [
            {"uuid": UUID, "name": "Steve", "level": 4, "bypassesPlayerLimit": False},
            {"name": "Alex", "level": 4, "bypassesPlayerLimit": False},
        ])
        directory = ActorDirectory()
        directory.set_opped("main", Actor("Steve"), True, level=1, bypasses_player_limit=True)
        directory.set_opped("main", Actor("Notch"), True, level=2)

        assert directory.sync("main", tmp_path) == 1

        records = json.loads(ops.read_text(encoding="utf-8"))
        assert records[0] == {"uuid": UUID, "name": "Steve", "level": 1, "bypassesPlayerLimit": True}
        assert records[1]["level"] == 4
        assert list(directory.pending("main")) == ["Notch"]

    def test_sync_without_pending(self, tmp_path: Path) -> None:
        assert ActorDirectory().sync("main", tmp_path) == 0
        assert not (tmp_path / "ops.json").exists()

    def test_sync_without_ops_file_keeps_queue(self, tmp_path: Path) -> None:
        directory = ActorDirectory()
        directory.set_opped("main", Actor("Steve"), True, level=2)
        assert directory.sync("main", tmp_path) == 0
        assert "Steve" in directory.pending("main")

"""Tests for the envelope, the line type catalog and the classifier."""
from __future__ import annotations

import threading

import pytest

from serverpilot.directory.actors import Actor, ActorDirectory
from serverpilot.errors import EnvelopeMismatchError, TypeMismatchError, UnclassifiedAccess
from serverpilot.parsers.base import LineType, LineTypeSet
from serverpilot.parsers.catalog import COMMANDS, DEATHS, PLAYERS, SERVER, default_registry
from serverpilot.parsers.classifier import LineClassifier
from serverpilot.parsers.envelope import parse_envelope, try_parse_envelope


def _line(content: str) -> str:
    return f"[10:15:30] [Server thread/INFO]: {content}"


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class TestEnvelope:
    def test_splits_three_parts(self) -> None:
        raw = parse_envelope(_line("Steve joined the game") + "\n")
        assert raw.timestamp == "10:15:30"
        assert raw.thread == "Server thread/INFO"
        assert raw.content == "Steve joined the game"
        assert raw.line == _line("Steve joined the game")

    def test_level_from_thread_label(self) -> None:
        assert parse_envelope(_line("x")).level == "INFO"
        assert parse_envelope("[10:15:30] [main]: x").level is None

    def test_thread_label_ends_at_first_separator(self) -> None:
        line = "[12:00:00] [Server thread/INFO]: <Bob> see [x]: y"
        raw = parse_envelope(line)
        assert raw.thread == "Server thread/INFO"
        assert raw.content == "<Bob> see [x]: y"
        event = LineClassifier().classify_line(line)
        assert event.type_name == "PLAYER_SPOKEN_MESSAGE"
        assert event.sub_contents == "see [x]: y"

    @pytest.mark.parametrize("line", [
        "Steve joined the game",
        "[24:00:00] [Server thread/INFO]: late",
        "[10:15] [Server thread/INFO]: short time",
        "[10:15:30] Server thread/INFO: no brackets",
        "[10:15:30] [Server thread/INFO]: ",
        "",
    ])
    def test_mismatch_raises(self, line: str) -> None:
        with pytest.raises(EnvelopeMismatchError):
            parse_envelope(line)
        assert try_parse_envelope(line) is None


# ---------------------------------------------------------------------------
# LineType / LineTypeSet / LineTypeRegistry
# ---------------------------------------------------------------------------

class TestLineType:
    def test_index_beyond_groups_rejected(self) -> None:
        with pytest.raises(ValueError):
            LineType.build("BAD", r"(\w+) did it", 1, 2)

    def test_zero_index_rejected(self) -> None:
        with pytest.raises(ValueError):
            LineType.build("BAD", r"(\w+) did it", 0)

    def test_full_match_semantics(self) -> None:
        lt = LineType.build("JOIN", r"(\w+) joined", 1)
        assert lt.matches("Steve joined")
        assert not lt.matches("Steve joined the game")
        assert not lt.matches("oh Steve joined")

    def test_set_rejects_duplicate_names(self) -> None:
        a = LineType.build("A", r"a")
        with pytest.raises(ValueError):
            LineTypeSet("S", [a, LineType.build("A", r"b")])
        s = LineTypeSet("S", [a])
        with pytest.raises(ValueError):
            s.add(LineType.build("A", r"c"))

    def test_set_lookup_by_attribute_and_item(self) -> None:
        assert SERVER.DONE_LOADING is SERVER["DONE_LOADING"]
        with pytest.raises(AttributeError):
            SERVER.NOPE
        with pytest.raises(KeyError):
            SERVER["NOPE"]

    def test_registry_rejects_duplicate_set(self) -> None:
        registry = default_registry()
        with pytest.raises(ValueError):
            registry.register(LineTypeSet("SERVER", []))

    def test_registered_first_wins(self) -> None:
        custom = LineTypeSet("CUSTOM", [
            LineType.build("PROMOTION", r"Made (\w{3,16}) a server operator", recipient=1),
        ])
        registry = default_registry()
        registry.register(custom, first=True)
        event = LineClassifier(registry).classify_line(_line("Made Steve a server operator"))
        assert event.type_name == "PROMOTION"

    def test_find_across_sets(self) -> None:
        registry = default_registry()
        assert registry.find("DEATH_DROWNED") is DEATHS.DEATH_DROWNED
        assert registry.find("NOPE") is None


class TestCatalog:
    def test_set_sizes(self) -> None:
        assert len(COMMANDS) == 32
        assert len(PLAYERS) == 8
        assert len(DEATHS) == 68
        assert len(SERVER) == 1
        assert len(default_registry()) == 109

    def test_registry_order(self) -> None:
        assert [s.name for s in default_registry().sets] == ["COMMANDS", "PLAYERS", "DEATHS", "SERVER"]

    def test_names_unique(self) -> None:
        names = [t.name for t in default_registry()]
        assert len(names) == len(set(names))

    def test_every_death_is_tagged(self) -> None:
        assert all(t.death for t in DEATHS)
        assert not any(t.death for s in (COMMANDS, PLAYERS, SERVER) for t in s)

    def test_indices_refer_to_groups(self) -> None:
        for t in default_registry():
            for index in (t.cause_user_index, t.recipient_index, t.sub_contents_index):
                assert index == -1 or 1 <= index <= t.pattern.groups, t.name


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassification:
    @pytest.mark.parametrize("content,expected", [
        ("Made Steve a server operator", "OPPED_SERVER"),
        ("[Alex: Made Steve a server operator]", "OPPED_PLAYER"),
        ("Made Steve no longer a server operator", "DEOPPED_SERVER"),
        ("Banned Griefer: Griefing spawn", "BAN_SERVER"),
        ("Unbanned Griefer", "PARDON_SERVER"),
        ("Added Steve to the whitelist", "WHITELIST_ADD_SERVER"),
        ("[Alex: Removed Steve from the whitelist]", "WHITELIST_REMOVE_PLAYER"),
        ("Set the weather to rain & thunder", "WEATHER_SERVER"),
        ("Steve joined the game", "PLAYER_JOINED"),
        ("<Steve> hello there", "PLAYER_SPOKEN_MESSAGE"),
        ("[Steve] hello there", "PLAYER_SAY_MESSAGE"),
        ("UUID of player Steve is 069a79f4-44e9-4726-a5be-fca90e38aaf5", "PLAYER_UUID"),
        ("Steve drowned", "DEATH_DROWNED"),
        ("Steve was slain by Zombie", "DEATH_SLAIN"),
        ("Steve was slain by Alex using Sword", "DEATH_SLAIN_USING"),
        ("Steve was pricked to death", "DEATH_PRICK"),
        ("Steve was struck by lightning whilst fighting Creeper", "DEATH_LIGHT_FIGHT"),
        ('Done (15.559s)! For help, type "help"', "DONE_LOADING"),
    ])
    def test_types(self, content: str, expected: str) -> None:
        event = LineClassifier().classify_line(_line(content))
        assert event.type_name == expected

    def test_done_loading_sub_contents(self) -> None:
        event = LineClassifier().classify_line(_line('Done (15.559s)! For help, type "help"'))
        assert event.is_type(SERVER.DONE_LOADING)
        assert event.sub_contents == "15.559"
        assert event.cause_user is None
        assert event.recipient is None

    def test_issued_command_fields(self) -> None:
        event = LineClassifier().classify_line(_line("[Alex: Made Steve a server operator]"))
        assert event.cause_user == Actor("Alex")
        assert event.recipient == Actor("Steve")
        assert event.sub_contents is None

    def test_ban_reason_is_sub_contents(self) -> None:
        event = LineClassifier().classify_line(_line("Banned Griefer: Griefing spawn"))
        assert event.recipient.name == "Griefer"
        assert event.sub_contents == "Griefing spawn"

    def test_death_fields(self) -> None:
        event = LineClassifier().classify_line(_line("Steve was slain by Alex using Sword"))
        assert event.is_death
        assert event.recipient.name == "Steve"
        assert event.cause_user.name == "Alex"
        assert event.sub_contents == "Sword"

    def test_magic_shadows_generic_implement(self) -> None:
        event = LineClassifier().classify_line(_line("Steve was killed by Alex using magic"))
        assert event.type_name == "DEATH_MAGIC_USING"
        assert event.sub_contents is None

    def test_selector_actor(self) -> None:
        event = LineClassifier().classify_line(_line("[@: Set the time to day]"))
        assert event.type_name == "TIMESET_PLAYER"
        assert event.cause_user.is_selector

    def test_generic_event(self) -> None:
        event = LineClassifier().classify_line(_line('Preparing level "world"'))
        assert event.is_generic
        assert event.line_type is None
        assert event.content == 'Preparing level "world"'
        for field in ("sub_contents", "cause_user", "recipient", "is_death"):
            with pytest.raises(UnclassifiedAccess):
                getattr(event, field)

    def test_unclassified_access_is_runtime_error(self) -> None:
        event = LineClassifier().classify_line(_line("nothing to see"))
        with pytest.raises(RuntimeError):
            event.recipient

    def test_explicit_type_checked(self) -> None:
        classifier = LineClassifier()
        event = classifier.classify_line(_line("Steve drowned"), DEATHS.DEATH_DROWNED)
        assert event.recipient.name == "Steve"
        with pytest.raises(TypeMismatchError):
            classifier.classify_line(_line("Steve drowned"), PLAYERS.PLAYER_JOINED)

    def test_unenveloped_line_raises(self) -> None:
        with pytest.raises(EnvelopeMismatchError):
            LineClassifier().classify_line("Steve drowned")


class TestLazyFields:
    def test_resolved_on_first_access_only(self) -> None:
        event = LineClassifier().classify_line(_line("Steve joined the game"))
        assert not event.resolved
        first = event.cause_user
        assert event.resolved
        assert event.cause_user is first

    def test_resolution_goes_through_directory(self) -> None:
        directory = ActorDirectory()
        event = LineClassifier(directory=directory).classify_line(_line("Steve joined the game"))
        assert event.cause_user is directory.resolve("Steve")

    def test_concurrent_access_resolves_once(self) -> None:
        calls: list[str] = []
        lock = threading.Lock()

        def lookup(name: str) -> str:
            with lock:
                calls.append(name)
            return "069a79f4-44e9-4726-a5be-fca90e38aaf5"

        event = LineClassifier(directory=ActorDirectory(lookup)).classify_line(
            _line("Steve was slain by Zombie")
        )
        seen: list[Actor] = []
        barrier = threading.Barrier(8)

        def read() -> None:
            barrier.wait()
            actor = event.recipient
            with lock:
                seen.append(actor)

        threads = [threading.Thread(target=read) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert len(seen) == 8
        assert all(a is seen[0] for a in seen)
        assert sorted(calls) == ["Steve", "Zombie"]

    def test_to_dict(self) -> None:
        data = LineClassifier().classify_line(_line("Steve was slain by Zombie")).to_dict()
        assert data["type"] == "DEATH_SLAIN"
        assert data["recipient"] == "Steve"
        assert data["cause_user"] == "Zombie"
        assert data["death"] is True
        generic = LineClassifier().classify_line(_line("hello")).to_dict()
        assert generic["type"] is None
        assert "recipient" not in generic


class TestStreams:
    def test_classify_lines_skips_unenveloped(self, server_log_lines) -> None:
        events = list(LineClassifier().classify_lines(server_log_lines))
        assert len(events) == 9
        assert events[2].type_name == "DONE_LOADING"
        assert events[-1].type_name == "PLAYER_LEFT"

    def test_classify_file(self, tmp_log_file, server_log_lines) -> None:
        path = tmp_log_file(server_log_lines)
        names = [e.type_name for e in LineClassifier().classify_file(str(path))]
        assert names[:3] == [None, None, "DONE_LOADING"]
        assert "DEATH_SLAIN" in names


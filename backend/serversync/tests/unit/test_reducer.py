import pytest
from structlog.testing import capture_logs

from serversync.messaging.reducer import HandleResult
from serversync.messaging.types import CreateMessage, RemoveMessage
from serversync.registry.types import Player
from serversync.tests.helpers import ALEX_ID, STEVE_ID, wire


def _create(name="lobby-1", ip="10.0.0.1", port=25565, max_players=0):
    return wire(type="CREATE", name=name, ip=ip, port=port, maxPlayers=max_players)


def _heartbeat(name="lobby-1", ip="10.0.0.1", port=25565, max_players=0, players=()):
    return wire(type="HEARTBEAT", name=name, ip=ip, port=port, maxPlayers=max_players, players=list(players))


def _roster_update(directive, player_id, player_name, name="lobby-1"):
    return wire(type="UPDATE", name=name, playerUpdate=directive, playerToUpdate=f"{player_id};{player_name}")


class TestCreate:
    @pytest.mark.parametrize(("name", "ip", "port"), [("lobby-1", "10.0.0.1", 25565), ("a", "::1", 1)])
    def test_create_registers_fresh_server(self, reducer, registry, clock, name, ip, port):
        assert reducer.handle(_create(name, ip, port)) == HandleResult.APPLIED

        server = registry.get(name)
        assert server.ip == ip
        assert server.port == port
        assert server.max_players == 0
        assert server.players == {}
        assert server.last_heartbeat == clock.now

    def test_create_applies_carried_max_players(self, reducer, registry):
        reducer.handle(_create(max_players=64))
        assert registry.get("lobby-1").max_players == 64

    def test_second_create_replaces_without_merge(self, reducer, registry, host_adapter):
        reducer.handle(_create(ip="10.0.0.1", port=25565))
        reducer.handle(_roster_update("ADD", STEVE_ID, "Steve"))
        reducer.handle(_create(ip="10.0.0.2", port=25566))

        server = registry.get("lobby-1")
        assert (server.ip, server.port) == ("10.0.0.2", 25566)
        assert server.players == {}
        assert host_adapter.calls == [
            ("register", "lobby-1"),
            ("unregister", "lobby-1"),
            ("register", "lobby-1"),
        ]

    def test_apply_typed_message(self, reducer, registry):
        result = reducer.apply(CreateMessage(name="lobby-1", ip="10.0.0.1", port=25565, max_players=10))
        assert result == HandleResult.APPLIED
        assert registry.get("lobby-1").max_players == 10


class TestHeartbeat:
    def test_unknown_server_is_fully_resynced(self, reducer, registry, host_adapter):
        result = reducer.handle(
            _heartbeat(max_players=50, players=[f"{STEVE_ID};Steve", f"{ALEX_ID};Alex"]),
        )

        assert result == HandleResult.APPLIED
        server = registry.get("lobby-1")
        assert server.max_players == 50
        assert server.players == {STEVE_ID: Player(STEVE_ID, "Steve"), ALEX_ID: Player(ALEX_ID, "Alex")}
        assert server.players[ALEX_ID].display_name == "Alex"
        assert host_adapter.calls == [("register", "lobby-1")]

    def test_known_server_only_refreshes_heartbeat(self, reducer, registry, clock, host_adapter):
        reducer.handle(_create(ip="10.0.0.1", port=25565, max_players=20))
        clock.advance(10)

        reducer.handle(_heartbeat(ip="10.9.9.9", port=1, max_players=99, players=[f"{STEVE_ID};Steve"]))

        server = registry.get("lobby-1")
        assert server.last_heartbeat == clock.now
        assert (server.ip, server.port, server.max_players) == ("10.0.0.1", 25565, 20)
        assert server.players == {}
        assert host_adapter.calls == [("register", "lobby-1")]

    def test_heartbeat_after_eviction_recreates(self, reducer, registry, clock):
        reducer.handle(_create())
        clock.advance(31)
        registry.sweep()
        assert registry.get("lobby-1") is None

        reducer.handle(_heartbeat(players=[f"{STEVE_ID};Steve"]))

        assert registry.get("lobby-1").contains_player(STEVE_ID)


class TestUpdate:
    def test_add_player(self, reducer, registry):
        reducer.handle(_create())
        assert reducer.handle(_roster_update("ADD", STEVE_ID, "Steve")) == HandleResult.APPLIED
        assert registry.get("lobby-1").players == {STEVE_ID: Player(STEVE_ID, "Steve")}

    def test_add_existing_player_is_idempotent(self, reducer, registry):
        reducer.handle(_create())
        reducer.handle(_roster_update("ADD", STEVE_ID, "Steve"))
        reducer.handle(_roster_update("ADD", STEVE_ID, "Steve_Renamed"))

        server = registry.get("lobby-1")
        assert server.player_count == 1
        assert server.players[STEVE_ID].display_name == "Steve"

    def test_remove_player(self, reducer, registry):
        reducer.handle(_heartbeat(players=[f"{STEVE_ID};Steve", f"{ALEX_ID};Alex"]))
        reducer.handle(_roster_update("REMOVE", STEVE_ID, "Steve"))
        assert set(registry.get("lobby-1").players) == {ALEX_ID}

    def test_remove_absent_player_is_noop(self, reducer, registry):
        reducer.handle(_create())
        assert reducer.handle(_roster_update("REMOVE", STEVE_ID, "Steve")) == HandleResult.APPLIED
        assert registry.get("lobby-1").players == {}

    def test_max_players(self, reducer, registry):
        reducer.handle(_create())
        assert reducer.handle(wire(type="UPDATE", name="lobby-1", maxPlayers=100)) == HandleResult.APPLIED
        assert registry.get("lobby-1").max_players == 100

    def test_roster_patch_wins_over_max_players(self, reducer, registry):
        reducer.handle(_create(max_players=20))
        reducer.handle(
            wire(type="UPDATE", name="lobby-1", playerUpdate="ADD", playerToUpdate=f"{STEVE_ID};Steve", maxPlayers=5),
        )
        server = registry.get("lobby-1")
        assert server.contains_player(STEVE_ID)
        assert server.max_players == 20

    def test_empty_update_is_noop(self, reducer, registry):
        reducer.handle(_create(max_players=20))
        assert reducer.handle(wire(type="UPDATE", name="lobby-1")) == HandleResult.IGNORED
        assert registry.get("lobby-1").max_players == 20

    def test_update_for_unknown_server_is_ignored(self, reducer, registry, host_adapter):
        with capture_logs() as logs:
            result = reducer.handle(wire(type="UPDATE", name="ghost", maxPlayers=50))

        assert result == HandleResult.IGNORED
        assert registry.get("ghost") is None
        assert len(registry) == 0
        assert host_adapter.calls == []
        assert not [e for e in logs if e["log_level"] in ("warning", "error")]

    def test_update_does_not_refresh_heartbeat(self, reducer, registry, clock):
        reducer.handle(_create())
        created_at = clock.now
        clock.advance(10)
        reducer.handle(wire(type="UPDATE", name="lobby-1", maxPlayers=10))
        assert registry.get("lobby-1").last_heartbeat == created_at


class TestRemove:
    def test_remove_known_server(self, reducer, registry, host_adapter):
        reducer.handle(_create())
        assert reducer.handle(wire(type="REMOVE", name="lobby-1")) == HandleResult.APPLIED
        assert registry.get("lobby-1") is None
        assert host_adapter.count("unregister", "lobby-1") == 1

    def test_remove_unknown_server_is_noop(self, reducer, host_adapter):
        assert reducer.apply(RemoveMessage(name="ghost")) == HandleResult.IGNORED
        assert host_adapter.calls == []


class TestFailureIsolation:
    def test_malformed_message_is_reported_and_logged(self, reducer, registry):
        with capture_logs() as logs:
            result = reducer.handle(wire(type="CREATE", name="lobby-1"))
        assert result == HandleResult.MALFORMED
        assert registry.get("lobby-1") is None
        assert any(e["event"] == "dropped malformed server message" for e in logs)

    def test_unknown_type_is_reported(self, reducer):
        with capture_logs() as logs:
            result = reducer.handle(wire(type="RESTART", name="lobby-1"))
        assert result == HandleResult.UNKNOWN_TYPE
        assert any(e.get("message_type") == "RESTART" for e in logs)

    def test_garbage_bytes(self, reducer):
        assert reducer.handle(b"\x00\x01garbage") == HandleResult.MALFORMED

    def test_bad_player_token_leaves_registry_untouched(self, reducer, registry):
        result = reducer.handle(_heartbeat(players=[f"{STEVE_ID};Steve", "broken"]))
        assert result == HandleResult.MALFORMED
        assert registry.get("lobby-1") is None

    def test_following_messages_still_applied(self, reducer, registry):
        reducer.handle(b"{")
        reducer.handle(wire(type="NOPE", name="x"))
        reducer.handle(_create())
        assert registry.get("lobby-1") is not None

    def test_host_adapter_failure_is_contained(self, registry, reducer, host_adapter, monkeypatch):
        def explode(_server):
            raise RuntimeError("proxy rejected server")

        monkeypatch.setattr(host_adapter, "register_routable", explode)
        with capture_logs() as logs:
            result = reducer.handle(_create())
        assert result == HandleResult.FAILED
        assert any(e["event"] == "failed to apply server message" for e in logs)
        assert registry.get("lobby-1") is None

    def test_heartbeat_after_rejected_create_registers(self, registry, reducer, host_adapter, monkeypatch):
        def explode(_server):
            raise RuntimeError("proxy rejected server")

        monkeypatch.setattr(host_adapter, "register_routable", explode)
        reducer.handle(_create())
        monkeypatch.undo()

        assert reducer.handle(_heartbeat(players=[f"{STEVE_ID};Steve"])) == HandleResult.APPLIED
        assert host_adapter.calls == [("register", "lobby-1")]
        assert registry.get("lobby-1").contains_player(STEVE_ID)

    def test_deeply_nested_payload_is_malformed(self, reducer, registry):
        with capture_logs() as logs:
            result = reducer.handle(b"[" * 100_000)
        assert result == HandleResult.MALFORMED
        assert len(registry) == 0
        assert any(e["event"] == "dropped malformed server message" for e in logs)

    async def test_on_message_never_raises(self, reducer):
        await reducer.on_message(b"not json")


class TestScenarios:
    def test_heartbeat_on_known_ignores_payload_then_update_applies(self, reducer, registry):
        reducer.handle(_create("lobby-1", "10.0.0.1", 25565, max_players=0))
        reducer.handle(_heartbeat("lobby-1", players=["0b7a5e7e-3f9a-4c53-9a3f-2f1a3c4b5d6e;Steve"]))

        server = registry.get("lobby-1")
        assert server.players == {}
        assert server.max_players == 0

        reducer.handle(wire(type="UPDATE", name="lobby-1", maxPlayers=100))
        assert registry.get("lobby-1").max_players == 100

        reducer.handle(wire(type="REMOVE", name="lobby-1"))
        assert registry.get("lobby-1") is None

    def test_remove_invokes_unregister_exactly_once(self, reducer, registry, host_adapter):
        reducer.handle(_create("lobby-1", "10.0.0.1", 25565))
        reducer.handle(wire(type="UPDATE", name="lobby-1", maxPlayers=100))
        reducer.handle(wire(type="REMOVE", name="lobby-1"))
        reducer.handle(wire(type="REMOVE", name="lobby-1"))

        assert registry.get("lobby-1") is None
        assert host_adapter.count("unregister", "lobby-1") == 1

    def test_ghost_update(self, reducer, registry):
        reducer.handle(wire(type="UPDATE", name="ghost", maxPlayers=50))
        assert registry.get("ghost") is None

"""Connection status state machine tests."""

from roomservice.client.state import ConnectionStateMachine, ConnectionStatus


def test_starts_connecting():
    assert ConnectionStateMachine().status is ConnectionStatus.CONNECTING


def test_transitions_notify_listeners():
    machine = ConnectionStateMachine()
    seen = []
    machine.on_change(seen.append)

    machine.opened()
    machine.failed()
    machine.connecting()
    machine.opened()

    assert seen == [
        ConnectionStatus.LIVE,
        ConnectionStatus.OFFLINE,
        ConnectionStatus.CONNECTING,
        ConnectionStatus.LIVE,
    ]


def test_repeated_status_is_not_a_change():
    machine = ConnectionStateMachine()
    seen = []
    machine.on_change(seen.append)

    machine.connecting()
    machine.failed()
    machine.failed()

    assert seen == [ConnectionStatus.OFFLINE]


def test_remove_listener():
    machine = ConnectionStateMachine()
    seen = []
    remove = machine.on_change(seen.append)

    remove()
    remove()
    machine.opened()

    assert seen == []


def test_failing_listener_does_not_block_others():
    machine = ConnectionStateMachine()
    seen = []

    def bad(status):
        raise RuntimeError("render bug")

    machine.on_change(bad)
    machine.on_change(seen.append)
    machine.opened()

    assert machine.status is ConnectionStatus.LIVE
    assert seen == [ConnectionStatus.LIVE]


def test_status_values_are_strings():
    assert [s.value for s in ConnectionStatus] == ["connecting", "live", "offline"]

from scvibe.engine import SynthInstance
from scvibe.session import SynthSession


def _instance(name: str, instance_id: str) -> SynthInstance:
    return SynthInstance(id=instance_id, definition_name=name)


def test_register_keeps_start_order() -> None:
    session = SynthSession()
    session.register(_instance("kick", "1000"))
    session.register(_instance("bass", "1001"))

    assert session.names() == ["kick", "bass"]
    assert len(session) == 2


def test_drain_returns_a_copy() -> None:
    session = SynthSession()
    session.register(_instance("kick", "1000"))

    drained = session.drain()
    drained.clear()

    assert len(session) == 1


def test_clear_empties_session() -> None:
    session = SynthSession()
    session.register(_instance("kick", "1000"))
    session.clear()

    assert session.drain() == []
    assert session.names() == []

import pytest

from candid.core.exceptions import SessionClosedError
from candid.engine.conversation import ConversationStore
from candid.models.session import Role, Turn


@pytest.fixture
def store():
    store = ConversationStore()
    store.append(Turn(role=Role.SYSTEM, content="You are an interviewer."))
    return store


def test_first_turn_must_be_system():
    store = ConversationStore()
    with pytest.raises(ValueError):
        store.append(Turn(role=Role.USER, content="hi there"))
    assert len(store) == 0


def test_snapshot_keeps_append_order(store):
    turns = [
        Turn(role=Role.ASSISTANT, content="Hi, I'm Alex."),
        Turn(role=Role.USER, content="I'm a backend engineer."),
        Turn(role=Role.USER, content="Mostly Python."),
        Turn(role=Role.ASSISTANT, content="Great."),
    ]
    for turn in turns:
        store.append(turn)

    snapshot = store.snapshot()
    assert snapshot[0].role == Role.SYSTEM
    assert list(snapshot[1:]) == turns
    assert len(store) == 5


def test_snapshot_is_a_copy(store):
    snapshot = store.snapshot()
    store.append(Turn(role=Role.ASSISTANT, content="Hello."))

    assert len(snapshot) == 1
    assert len(store.snapshot()) == 2


def test_transcript_hides_system_turn(store):
    store.append(Turn(role=Role.ASSISTANT, content="Hello."))

    assert [turn.content for turn in store.transcript()] == ["Hello."]


def test_started_needs_an_assistant_turn(store):
    assert not store.started
    store.append(Turn(role=Role.ASSISTANT, content="Hello."))
    assert store.started


def test_last(store):
    assert store.last().role == Role.SYSTEM
    assert ConversationStore().last() is None


def test_sealed_store_rejects_appends(store):
    store.seal()

    with pytest.raises(SessionClosedError):
        store.append(Turn(role=Role.ASSISTANT, content="too late"))
    assert store.sealed
    assert len(store) == 1


def test_turns_are_immutable():
    turn = Turn(role=Role.USER, content="first")
    with pytest.raises(Exception):
        turn.content = "edited"

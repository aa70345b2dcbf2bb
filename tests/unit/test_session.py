from chatbubble.consent import ConsentState
from chatbubble.message import Message, MessageParts, MessageRole, ToolCall, ToolResult
from chatbubble.session import InMemorySessionStore, SessionState


def _turn_transcript():
    result = ToolResult(tool_call_id="call_42", tool_name="search", args={"query": "x"}, result="data")
    return [
        Message.user("hello"),
        Message.tool_result([result]),
        Message.assistant(MessageParts(
            text="hi there",
            thinking="",
            tool_calls=[ToolCall(id="call_42", name="search", arguments={"query": "x"})],
            tool_results=[result],
        )),
    ]


def test_missing_session_loads_fresh_state():
    state = InMemorySessionStore().load("nope")

    assert state.session_id == "nope"
    assert state.transcript == []
    assert state.pending_input == ""
    assert state.consent is ConsentState.UNSET


def test_transcript_round_trips_through_store():
    """Tool-result fields survive save/load, unlike a transcript typed
    on a base message class."""
    store = InMemorySessionStore()
    state = SessionState(session_id="s1", transcript=_turn_transcript(), pending_input="draft")

    store.save(state)
    restored = store.load("s1")

    assert [m.role for m in restored.transcript] == [
        MessageRole.USER, MessageRole.TOOL_RESULT, MessageRole.ASSISTANT,
    ]
    assert restored.transcript[1].parts.tool_results[0].tool_call_id == "call_42"
    assert restored.transcript[2].parts.tool_calls[0].arguments == {"query": "x"}
    assert [m.id for m in restored.transcript] == [m.id for m in state.transcript]
    assert [m.timestamp for m in restored.transcript] == [m.timestamp for m in state.transcript]
    assert restored.pending_input == "draft"


def test_consent_round_trips():
    store = InMemorySessionStore()
    store.save(SessionState(session_id="s1", consent=ConsentState.DECLINED))

    assert store.load("s1").consent is ConsentState.DECLINED


def test_loaded_states_are_independent():
    store = InMemorySessionStore()
    store.save(SessionState(session_id="s1"))

    first = store.load("s1")
    first.transcript.append(Message.user("unsaved"))

    assert store.load("s1").transcript == []


def test_delete_forgets_state():
    store = InMemorySessionStore()
    store.save(SessionState(session_id="s1", pending_input="x"))
    store.delete("s1")

    assert store.load("s1").pending_input == ""

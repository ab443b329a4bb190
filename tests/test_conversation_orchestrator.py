"""Tests for ConversationOrchestrator — turn-taking around the answer call."""

import asyncio

import pytest
from helpers import GatedAnswer

from crystallize.conversation.models import Answer, Citation, Speaker
from crystallize.conversation.orchestrator import (
    EMPTY_ANSWER_REPLY,
    ERROR_REPLY,
    ConversationOrchestrator,
    ConversationState,
)
from crystallize.conversation.store import INTERRUPTED_REPLY, ConversationStore
from crystallize.errors import ServiceFailure, ValidationRejection


def _released(answer: Answer | None = None, exc: Exception | None = None) -> GatedAnswer:
    gate = GatedAnswer(answer, exc)
    gate.release.set()
    return gate


def _chat(records, answer, identity: str | None = "alice"):
    store = ConversationStore(records, "alice")
    return store, ConversationOrchestrator(store, identity, answer)


# -- happy path --------------------------------------------------------------


async def test_user_and_placeholder_visible_before_answer(records) -> None:
    gate = GatedAnswer(Answer(text="Entropy is disorder."))
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("What is entropy?"))
    await gate.started.wait()

    assert chat.state == ConversationState.AWAITING_RESPONSE
    user, placeholder = store.turns
    assert user.speaker == Speaker.USER
    assert user.text == "What is entropy?"
    assert placeholder.is_assistant
    assert placeholder.pending is True
    assert placeholder.text == ""

    gate.release.set()
    reply = await task

    assert reply.id == placeholder.id
    assert reply.text == "Entropy is disorder."
    assert reply.pending is False
    assert store.turns[1] == reply
    assert chat.state == ConversationState.IDLE


async def test_citations_attached(records) -> None:
    cite = Citation.from_source("https://phys.example/entropy", "Entropy")
    store, chat = _chat(records, _released(Answer(text="Disorder.", citations=[cite])))

    reply = await chat.submit("What is entropy?")

    assert reply.citations == (cite,)


async def test_empty_answer_uses_fallback_text(records) -> None:
    _, chat = _chat(records, _released(Answer(text="   ")))

    reply = await chat.submit("Anything?")

    assert reply.text == EMPTY_ANSWER_REPLY
    assert reply.pending is False


async def test_history_is_prior_completed_turns(records) -> None:
    gate = _released(Answer(text="A1"))
    _, chat = _chat(records, gate)

    await chat.submit("Q1")
    await chat.submit("Q2")

    first_query, first_history, label = gate.calls[0]
    assert (first_query, first_history, label) == ("Q1", [], "alice")
    second_query, second_history, _ = gate.calls[1]
    assert second_query == "Q2"
    assert [(h.speaker, h.text) for h in second_history] == [
        (Speaker.USER, "Q1"),
        (Speaker.ASSISTANT, "A1"),
    ]


async def test_answer_completes_persisted_turn(records) -> None:
    _, chat = _chat(records, _released(Answer(text="Stored.")))

    await chat.submit("Q")

    reloaded = await ConversationStore.load(records, "alice")
    assert [t.text for t in reloaded.turns] == ["Q", "Stored."]
    assert reloaded.pending is None


# -- rejections --------------------------------------------------------------


async def test_blank_text_rejected(records) -> None:
    store, chat = _chat(records, _released())

    with pytest.raises(ValidationRejection):
        await chat.submit("   ")
    assert store.turns == []


async def test_no_identity_rejected(records) -> None:
    store, chat = _chat(records, _released(), identity=None)

    with pytest.raises(ValidationRejection):
        await chat.submit("hello")
    assert store.turns == []


async def test_second_submit_rejected_while_awaiting(records) -> None:
    gate = GatedAnswer()
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("first"))
    await gate.started.wait()

    with pytest.raises(ValidationRejection):
        await chat.submit("second")
    assert len(store) == 2
    assert len(gate.calls) == 1

    gate.release.set()
    await task
    assert len(store) == 2


# -- failures ----------------------------------------------------------------


async def test_service_failure_becomes_error_reply(records) -> None:
    store, chat = _chat(records, _released(exc=ServiceFailure("unreachable")))

    reply = await chat.submit("Q")

    assert reply.text == ERROR_REPLY
    assert reply.citations is None
    assert store.pending is None
    assert chat.state == ConversationState.IDLE


async def test_unexpected_error_becomes_error_reply(records) -> None:
    store, chat = _chat(records, _released(exc=RuntimeError("boom")))

    reply = await chat.submit("Q")

    assert reply.text == ERROR_REPLY
    assert store.pending is None


async def test_can_submit_again_after_failure(records) -> None:
    gate = _released(exc=ServiceFailure("down"))
    store, chat = _chat(records, gate)

    await chat.submit("Q1")
    gate.exc = None
    reply = await chat.submit("Q2")

    assert reply.text == "An answer."
    assert len(store) == 4


# -- cancellation ------------------------------------------------------------


async def test_cancel_finalises_placeholder(records) -> None:
    gate = GatedAnswer()
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("Q"))
    await gate.started.wait()

    assert chat.cancel() is True
    reply = await task

    assert reply.text == INTERRUPTED_REPLY
    assert store.pending is None
    assert chat.state == ConversationState.IDLE


async def test_cancel_when_idle(records) -> None:
    _, chat = _chat(records, _released())
    assert chat.cancel() is False


async def test_cancelling_caller_propagates(records) -> None:
    gate = GatedAnswer()
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("Q"))
    await gate.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert store.turns[1].text == INTERRUPTED_REPLY
    assert chat.state == ConversationState.IDLE


async def test_log_cleared_while_awaiting(records) -> None:
    gate = GatedAnswer(Answer(text="Late answer."))
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("Q"))
    await gate.started.wait()
    await store.clear()
    gate.release.set()
    reply = await task

    assert reply.text == "Late answer."
    assert store.turns == []
    assert await records.get(store.key) is None


async def test_cancel_while_writing_turns_skips_answer_call(records) -> None:
    gate = _released(Answer(text="Never asked."))
    store, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("Q"))
    await asyncio.sleep(0)  # submit is now writing the user turn

    assert chat.cancel() is True
    reply = await task

    assert gate.calls == []
    assert reply.text == INTERRUPTED_REPLY
    assert [t.text for t in store.turns] == ["Q", INTERRUPTED_REPLY]
    assert chat.state == ConversationState.IDLE


async def test_cancel_does_not_leak_into_next_submit(records) -> None:
    gate = _released(Answer(text="Answered."))
    _, chat = _chat(records, gate)

    task = asyncio.create_task(chat.submit("Q1"))
    await asyncio.sleep(0)
    chat.cancel()
    await task

    reply = await chat.submit("Q2")

    assert reply.text == "Answered."
    assert [call[0] for call in gate.calls] == ["Q2"]

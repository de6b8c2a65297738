from conftest import reply_payload

from chatstream.accumulator import EMPTY_REPLY_ERROR, ReplyAccumulator
from chatstream.models import ReplyState


def _frame(text: str | None, **kwargs: str) -> ReplyState:
    return ReplyState.model_validate(reply_payload(text, **kwargs))


def test_apply_replaces_previous_snapshot() -> None:
    accumulator = ReplyAccumulator()

    accumulator.apply(_frame("Hel"))
    current = accumulator.apply(_frame("Hello", message_id="reply-2"))

    assert current.text == "Hello"
    assert accumulator.current.message_id == "reply-2"
    assert accumulator.frames == 2
    assert accumulator.has_content


def test_finish_with_content_has_no_error() -> None:
    accumulator = ReplyAccumulator()
    accumulator.apply(_frame("done"))

    reply = accumulator.finish("data: [DONE]")

    assert reply.end
    assert reply.error is None
    assert reply.text == "done"


def test_finish_without_content_reports_last_line() -> None:
    accumulator = ReplyAccumulator()
    accumulator.apply(_frame(None))

    reply = accumulator.finish('{"detail": "token expired"}')

    assert reply.end
    assert reply.parts == []
    assert reply.error == f'{EMPTY_REPLY_ERROR}: {{"detail": "token expired"}}'


def test_finish_on_empty_stream() -> None:
    reply = ReplyAccumulator().finish()

    assert reply.end
    assert reply.error == EMPTY_REPLY_ERROR
    assert reply.message_id == ""


def test_fail_keeps_partial_reply() -> None:
    accumulator = ReplyAccumulator()
    accumulator.apply(_frame("partial"))

    reply = accumulator.fail("ReadError: reset")

    assert reply.end
    assert reply.failed
    assert reply.text == "partial"


def test_frame_without_message_keeps_previous_message() -> None:
    accumulator = ReplyAccumulator()
    accumulator.apply(_frame("hello world", message_id="r1", conversation_id="c1"))

    current = accumulator.apply(
        ReplyState.model_validate({"message": None, "conversation_id": None, "error": "upstream error"})
    )
    reply = accumulator.finish()

    assert current.text == "hello world"
    assert current.message_id == "r1"
    assert current.conversation_id == "c1"
    assert reply.error == "upstream error"
    assert reply.end

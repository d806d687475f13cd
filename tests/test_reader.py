import pytest

from kvbench.reader import (
    ErrorKind,
    ErrorReply,
    ReaderError,
    ReplyReader,
    Status,
)

PROTOCOL_AT = 'Protocol error, got "@" as reply type byte'


def test_protocol_error_on_unknown_type_byte():
    reader = ReplyReader()
    reader.feed(b"@foo\r\n")
    with pytest.raises(ReaderError) as info:
        reader.get_reply()
    assert info.value.message.lower() == PROTOCOL_AT.lower()
    assert info.value.kind is ErrorKind.PROTOCOL


def test_protocol_error_inside_partial_array():
    reader = ReplyReader()
    reader.feed(b"*2\r\n")
    reader.feed(b"$5\r\nhello\r\n")
    reader.feed(b"@foo\r\n")
    with pytest.raises(ReaderError) as info:
        reader.get_reply()
    assert info.value.message.lower() == PROTOCOL_AT.lower()


def test_nested_depth_limit():
    reader = ReplyReader()
    for _ in range(9):
        reader.feed(b"*1\r\n")
    with pytest.raises(ReaderError) as info:
        reader.get_reply()
    assert info.value.message.lower().startswith("no support for")


def test_newline_split_across_feeds():
    reader = ReplyReader()
    reader.feed(b"+OK\r")
    assert reader.get_reply() is ReplyReader.NO_REPLY
    reader.feed(b"\n")
    reply = reader.get_reply()
    assert isinstance(reply, Status)
    assert reply == b"OK"


def test_error_state_is_kept():
    reader = ReplyReader()
    reader.feed(b"x")
    with pytest.raises(ReaderError):
        reader.get_reply()
    with pytest.raises(ReaderError):
        reader.get_reply()
    with pytest.raises(ReaderError):
        reader.feed(b"+OK\r\n")
    assert reader.error.kind is ErrorKind.PROTOCOL


def test_empty_multi_bulk():
    reader = ReplyReader()
    reader.feed(b"*0\r\n")
    assert reader.get_reply() == []


def test_empty_reader_has_no_reply():
    assert ReplyReader().get_reply() is ReplyReader.NO_REPLY


@pytest.mark.parametrize(
    "wire, expected",
    [
        (b"$5\r\nhello\r\n", b"hello"),
        (b"$0\r\n\r\n", b""),
        (b"$-1\r\n", None),
        (b"*-1\r\n", None),
        (b":1000\r\n", 1000),
        (b":-3\r\n", -3),
    ],
)
def test_simple_replies(wire, expected):
    reader = ReplyReader()
    reader.feed(wire)
    assert reader.get_reply() == expected


def test_binary_bulk_keeps_nul():
    reader = ReplyReader()
    reader.feed(b"$11\r\nhello\x00world\r\n")
    reply = reader.get_reply()
    assert reply == b"hello\x00world"
    assert len(reply) == 11


def test_error_reply_type():
    reader = ReplyReader()
    reader.feed(b"-ERR bad\r\n")
    reply = reader.get_reply()
    assert isinstance(reply, ErrorReply)
    assert reply == b"ERR bad"


def test_nested_arrays():
    wire = b"*2\r\n*2\r\n$3\r\nbar\r\n$3\r\nfoo\r\n+PONG\r\n"
    reader = ReplyReader()
    reader.feed(wire)
    reply = reader.get_reply()
    assert reply == [[b"bar", b"foo"], b"PONG"]
    assert isinstance(reply[1], Status)


def test_pipelined_replies():
    reader = ReplyReader()
    reader.feed(b"+PONG\r\n:1\r\n")
    assert reader.get_reply() == b"PONG"
    assert reader.get_reply() == 1
    assert reader.get_reply() is ReplyReader.NO_REPLY


def test_byte_by_byte_matches_whole():
    wire = b"*3\r\n$3\r\nfoo\r\n:42\r\n*1\r\n$-1\r\n"
    whole = ReplyReader()
    whole.feed(wire)
    expected = whole.get_reply()

    reader = ReplyReader()
    replies = []
    for i in range(len(wire)):
        reader.feed(wire[i:i + 1])
        reply = reader.get_reply()
        if reply is not ReplyReader.NO_REPLY:
            replies.append(reply)
    assert replies == [expected]


def test_many_replies_past_discard_threshold():
    values = [b"value%d" % i for i in range(500)]
    wire = b"".join(b"$%d\r\n%s\r\n" % (len(v), v) for v in values)
    reader = ReplyReader()
    reader.feed(wire)
    got = []
    while (reply := reader.get_reply()) is not ReplyReader.NO_REPLY:
        got.append(reply)
    assert got == values


def test_reuse_after_buffer_consumed():
    reader = ReplyReader(max_buf=4)
    reader.feed(b"+OK\r\n")
    assert reader.get_reply() == b"OK"
    reader.feed(b"$3\r\nabc\r\n")
    assert reader.get_reply() == b"abc"


def test_newline_type_byte_is_escaped():
    reader = ReplyReader()
    reader.feed(b"\n")
    with pytest.raises(ReaderError) as info:
        reader.get_reply()
    assert info.value.message == 'Protocol error, got "\\n" as reply type byte'


def test_negative_max_buf_rejected():
    with pytest.raises(ValueError):
        ReplyReader(max_buf=-1)
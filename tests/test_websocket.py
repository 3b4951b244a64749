"""Frame codec and the server side of a live channel over a socket pair."""

import socket
import struct
import threading

import pytest

from live_errors import LiveConnectionError
from live_server import OP_CLOSE, OP_PING, OP_TEXT, AcceptKey, DecodeFrame, EncodeFrame, _WebSocketConnection

MASK = b"\x01\x02\x03\x04"


def masked(opcode: int, payload: bytes) -> bytes:
    body = bytes(byte ^ MASK[index % 4] for index, byte in enumerate(payload))
    return struct.pack("!BB", 0x80 | opcode, 0x80 | len(payload)) + MASK + body


def reader(data: bytes):
    buffer = bytearray(data)

    def read(size: int) -> bytes:
        chunk = bytes(buffer[:size])
        del buffer[:size]
        return chunk

    return read


class TestCodec:
    def test_accept_key(self):
        assert AcceptKey("dGhlIHNhbXBsZSBub25jZQ==") == "s3pPLMBiTxaQ9kYGJzPo2BTgk1o="

    def test_short_text_frame(self):
        assert EncodeFrame(OP_TEXT, b"Hello") == b"\x81\x05Hello"

    def test_padded_message_uses_the_16_bit_length(self):
        frame = EncodeFrame(OP_TEXT, b"x" * 10000)

        assert frame[:4] == b"\x81\x7e" + struct.pack("!H", 10000)
        assert len(frame) == 10004

    def test_large_payload_uses_the_64_bit_length(self):
        assert EncodeFrame(OP_TEXT, b"x" * 70000)[:10] == b"\x81\x7f" + struct.pack("!Q", 70000)

    def test_masked_client_frame(self):
        frame = b"\x81\x85\x37\xfa\x21\x3d\x7f\x9f\x4d\x51\x58"

        assert DecodeFrame(reader(frame)) == (OP_TEXT, b"Hello")

    def test_unmasked_frame(self):
        assert DecodeFrame(reader(EncodeFrame(OP_PING, b"p"))) == (OP_PING, b"p")


class TestConnection:
    @pytest.fixture
    def pair(self):
        server, client = socket.socketpair()
        client.settimeout(2)
        yield _WebSocketConnection(server), client
        client.close()

    def test_send_writes_a_text_frame(self, pair):
        connection, client = pair

        connection.Send("hi")

        assert client.recv(4) == b"\x81\x02hi"

    def test_serve_answers_pings_until_close(self, pair):
        connection, client = pair
        thread = threading.Thread(target=connection.Serve, daemon=True)
        thread.start()

        client.sendall(masked(OP_PING, b"p"))
        assert client.recv(3) == b"\x8a\x01p"
        client.sendall(masked(OP_CLOSE, b""))
        thread.join(2)

        assert not thread.is_alive()
        assert connection.closed

    def test_send_after_close_raises(self, pair):
        connection, client = pair

        connection.Close()

        assert client.recv(4) == b"\x88\x02" + struct.pack("!H", 1000)
        with pytest.raises(LiveConnectionError):
            connection.Send("late")

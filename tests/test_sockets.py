import random
import socket
import struct

import pytest

from etherrecorder.sockets import (
    END_MARKER,
    START_MARKER,
    PacketStream,
    SocketError,
    SocketErrorKind,
    connect_with_timeout,
    find_marker_in_buffer,
    generate_random_data,
    setup_listening_server_socket,
    setup_socket,
)


def _packet(payload: bytes) -> bytes:
    return (
        struct.pack("<I", START_MARKER)
        + struct.pack("<I", len(payload))
        + payload
        + struct.pack("<I", END_MARKER)
    )


def test_start_marker_wire_bytes():
    data = generate_random_data(1, 1, random.Random(1))
    assert data[:4] == b"\x0d\xf0\xad\xba"
    assert data[-4:] == b"\xef\xbe\xad\xde"


@pytest.mark.parametrize("seed", range(5))
def test_generate_random_data_structure(seed):
    data = generate_random_data(2, 6, random.Random(seed))
    (length,) = struct.unpack_from("<I", data, 4)
    assert length % 4 == 0
    assert 8 <= length <= 24
    assert len(data) == 12 + length


def test_generate_random_data_is_deterministic_with_seed():
    first = generate_random_data(1, 10, random.Random(7))
    second = generate_random_data(1, 10, random.Random(7))
    assert first == second
    (length,) = struct.unpack_from("<I", first, 4)
    assert len(first) == 12 + length
    assert first[:4] == b"\x0d\xf0\xad\xba"
    assert first[-4:] == b"\xef\xbe\xad\xde"


def test_generate_random_data_rejects_bad_range():
    with pytest.raises(ValueError):
        generate_random_data(5, 2)


def test_generated_data_parses_back():
    data = generate_random_data(3, 3, random.Random(2))
    stream = PacketStream()
    stream.feed(data)
    assert stream.next_packet() == data


def test_find_marker_positions():
    buf = b"abc" + struct.pack("<I", START_MARKER) + b"xy" + struct.pack("<I", END_MARKER)
    assert find_marker_in_buffer(buf, START_MARKER) == 3
    assert find_marker_in_buffer(buf, END_MARKER) == 9


def test_find_marker_missing_and_short():
    assert find_marker_in_buffer(b"nothing here", START_MARKER) == -1
    assert find_marker_in_buffer(b"ab", END_MARKER) == -1


def test_find_marker_unknown_marker():
    with pytest.raises(ValueError):
        find_marker_in_buffer(b"abcdefgh", 0x12345678)


def test_complete_packet_extracted():
    pkt = _packet(b"hello world!")
    stream = PacketStream()
    stream.feed(pkt)
    assert stream.next_packet() == pkt
    assert stream.buffered == b""


def test_packet_split_across_feeds():
    pkt = _packet(b"ABCDEFGH")
    stream = PacketStream()
    stream.feed(pkt[:6])
    assert stream.next_packet() is None
    stream.feed(pkt[6:])
    assert stream.next_packet() == pkt


def test_garbage_before_start_discarded():
    pkt = _packet(b"data")
    stream = PacketStream()
    stream.feed(b"\x01\x02\x03junk" + pkt)
    assert stream.next_packet() == pkt


def test_marker_split_keeps_tail():
    pkt = _packet(b"1234")
    stream = PacketStream()
    stream.feed(b"garbage" + pkt[:2])
    assert stream.next_packet() is None
    assert len(stream.buffered) == 3
    stream.feed(pkt[2:])
    assert stream.next_packet() == pkt


def test_bad_end_marker_resyncs_to_next_packet():
    bad = struct.pack("<I", START_MARKER) + struct.pack("<I", 4) + b"abcd" + b"\x00" * 4
    good = _packet(b"good")
    stream = PacketStream()
    stream.feed(bad + good)
    assert stream.next_packet() == good


def test_two_packets_in_one_feed():
    first, second = _packet(b"one!"), _packet(b"two!")
    stream = PacketStream()
    stream.feed(first + second)
    assert stream.next_packet() == first
    assert stream.next_packet() == second
    assert stream.next_packet() is None


def test_oversized_packet_dropped():
    big = _packet(b"x" * 40)
    small = _packet(b"ok")
    stream = PacketStream()
    stream.feed(big + small)
    with pytest.raises(ValueError):
        stream.next_packet(max_size=20)
    assert stream.next_packet(max_size=20) == small


def test_read_packet_from_socket():
    left, right = socket.socketpair()
    try:
        pkt = _packet(b"over the wire")
        left.sendall(pkt[:5])
        left.sendall(pkt[5:])
        assert PacketStream(right).read_packet() == pkt
    finally:
        left.close()
        right.close()


def test_read_packet_connection_closed():
    left, right = socket.socketpair()
    try:
        left.sendall(b"partial")
        left.close()
        with pytest.raises(SocketError) as info:
            PacketStream(right).read_packet()
        assert info.value.kind is SocketErrorKind.CLOSED
    finally:
        right.close()


def test_listen_and_connect_roundtrip():
    server = setup_listening_server_socket(0)
    try:
        port = server.getsockname()[1]
        client, address = setup_socket(False, True, "127.0.0.1", port)
        try:
            assert address == ("127.0.0.1", port)
            connect_with_timeout(client, address, 5)
            conn, _ = server.accept()
            with conn:
                client.sendall(b"ping")
                assert conn.recv(4) == b"ping"
            assert client.getblocking()
        finally:
            client.close()
    finally:
        server.close()


def test_bind_failure_when_port_in_use():
    server = setup_listening_server_socket(0)
    try:
        port = server.getsockname()[1]
        with pytest.raises(SocketError) as info:
            setup_listening_server_socket(port)
        assert info.value.kind is SocketErrorKind.BIND
    finally:
        server.close()


def test_udp_client_setup_resolves_address():
    sock, address = setup_socket(False, False, "127.0.0.1", 4200)
    try:
        assert address == ("127.0.0.1", 4200)
        assert sock.type == socket.SOCK_DGRAM
    finally:
        sock.close()


def test_udp_server_is_bound():
    sock, _ = setup_socket(True, False, "", 0)
    try:
        assert sock.getsockname()[1] > 0
    finally:
        sock.close()


def test_connect_nonpositive_timeout():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        with pytest.raises(SocketError) as info:
            connect_with_timeout(sock, ("127.0.0.1", 1), 0)
        assert info.value.kind is SocketErrorKind.TIMEOUT
    finally:
        sock.close()


def test_connect_refused():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        with pytest.raises(SocketError) as info:
            connect_with_timeout(sock, ("127.0.0.1", port), 5)
        assert info.value.kind is SocketErrorKind.CONNECT
    finally:
        sock.close()


def test_read_packet_without_socket():
    with pytest.raises(SocketError) as info:
        PacketStream().read_packet()
    assert info.value.kind is SocketErrorKind.CLOSED
import io
import socket
import threading

import pytest

from etherrecorder.command_interface import (
    CommandInterface,
    CommandProtocol,
    ProtocolError,
    State,
    build_packet,
    listening_port_from_config,
)
from etherrecorder.config import Config
from etherrecorder.levels import LogLevel, LogOutput
from etherrecorder.logger import Logger


def make_logger(level=LogLevel.DEBUG):
    logger = Logger()
    logger.stream = io.StringIO()
    logger.set_output(LogOutput.SCREEN)
    logger.set_level(level)
    return logger


def make_protocol():
    received = []
    return CommandProtocol(received.append), received


def recv_exact(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def test_build_packet_wire_format():
    packet = build_packet(7, "ACK 3")
    assert packet == (
        bytes.fromhex("BAADF00D")
        + bytes.fromhex("00000015")
        + bytes.fromhex("00000007")
        + b"ACK 3"
        + bytes.fromhex("DEADBEEF")
    )


def test_build_packet_rejects_out_of_range_index():
    with pytest.raises(ValueError):
        build_packet(-1, "x")


def test_full_packet_yields_command_and_ack():
    protocol, received = make_protocol()
    acks = protocol.feed(build_packet(7, "SOME_COMMAND"))
    assert received == ["SOME_COMMAND"]
    assert acks == [build_packet(1, "ACK 7")]
    assert protocol.state is State.WAIT_FOR_START
    assert protocol.buffered == 0


def test_byte_by_byte_feeding():
    protocol, received = make_protocol()
    packet = build_packet(9, "log_level=info")
    acks = []
    for byte in packet:
        acks.extend(protocol.feed(bytes([byte])))
    assert received == ["log_level=info"]
    assert acks == [build_packet(1, "ACK 9")]


def test_partial_packet_waits_for_message():
    protocol, received = make_protocol()
    packet = build_packet(2, "hello")
    assert protocol.feed(packet[:10]) == []
    assert protocol.state is State.WAIT_FOR_MESSAGE
    assert received == []
    assert protocol.feed(packet[10:]) == [build_packet(1, "ACK 2")]


def test_garbage_before_start_marker_is_skipped():
    protocol, received = make_protocol()
    acks = protocol.feed(b"\x01\x02junk" + build_packet(4, "abc"))
    assert received == ["abc"]
    assert acks == [build_packet(1, "ACK 4")]


def test_two_packets_get_increasing_ack_indices():
    protocol, received = make_protocol()
    acks = protocol.feed(build_packet(10, "a") + build_packet(11, "b"))
    assert received == ["a", "b"]
    assert acks == [build_packet(1, "ACK 10"), build_packet(2, "ACK 11")]
    assert protocol.ack_index == 3


def test_body_stops_at_nul():
    protocol, received = make_protocol()
    protocol.feed(build_packet(1, b"cmd\0tail"))
    assert received == ["cmd"]


def test_invalid_length_raises_and_resets():
    protocol, received = make_protocol()
    bad = bytes.fromhex("BAADF00D") + (5).to_bytes(4, "big") + b"more data"
    with pytest.raises(ProtocolError):
        protocol.feed(bad)
    assert protocol.state is State.WAIT_FOR_START
    assert protocol.buffered == 0
    assert received == []


def test_too_long_length_raises():
    protocol, _ = make_protocol()
    bad = bytes.fromhex("BAADF00D") + (2017).to_bytes(4, "big")
    with pytest.raises(ProtocolError):
        protocol.feed(bad)
    assert protocol.state is State.WAIT_FOR_START


def test_bad_end_marker_raises_and_keeps_earlier_acks():
    protocol, received = make_protocol()
    good = build_packet(3, "ok")
    bad = build_packet(4, "no")[:-4] + b"\x00\x00\x00\x00"
    with pytest.raises(ProtocolError) as info:
        protocol.feed(good + bad)
    assert info.value.acks == [build_packet(1, "ACK 3")]
    assert received == ["ok"]
    assert protocol.buffered == 0
    assert protocol.feed(build_packet(5, "again")) == [build_packet(2, "ACK 5")]


def test_listening_port_from_config():
    assert listening_port_from_config(Config()) == 4100
    config = Config()
    config.read_lines(["[command_interface]", "listening_port = 4321"])
    assert listening_port_from_config(config) == 4321


def test_serve_connection_applies_command_and_acks():
    logger = make_logger()
    interface = CommandInterface(Config(), logger, threading.Event())
    server_side, client_side = socket.socketpair()
    client_side.settimeout(10)
    worker = threading.Thread(target=interface.serve_connection, args=(server_side,))
    worker.start()
    try:
        client_side.sendall(build_packet(5, "log_level = warn"))
        expected = build_packet(1, "ACK 5")
        ack = recv_exact(client_side, len(expected))
    finally:
        client_side.close()
        worker.join(10)
    assert ack == expected
    assert logger.level == LogLevel.WARN
    assert not worker.is_alive()


def test_run_stops_when_shutdown_is_set():
    config = Config()
    config.read_lines(["[command_interface]", "listening_port = 0"])
    logger = make_logger()
    shutdown = threading.Event()
    shutdown.set()
    CommandInterface(config, logger, shutdown).run()
    output = logger.stream.getvalue()
    assert "is listening on port 0" in output
    assert "is shutting down..." in output
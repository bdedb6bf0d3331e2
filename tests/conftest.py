"""Shared fixtures: a captured output fd and a one-key-per-read input fd."""

from __future__ import annotations

import os
import socket
import sys

import pytest


class Screen:
    """Pipe standing in for the terminal's output side."""

    def __init__(self) -> None:
        self._read_fd, self.fd = os.pipe()
        os.set_blocking(self._read_fd, False)

    def take(self) -> bytes:
        """Return (and consume) everything written so far."""
        chunks: list[bytes] = []
        while True:
            try:
                chunk = os.read(self._read_fd, 65536)
            except BlockingIOError:
                break
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        os.close(self._read_fd)
        os.close(self.fd)


class Keyboard:
    """Input fd that delivers one keystroke per read, as a raw terminal does.

    Backed by a SOCK_SEQPACKET socket pair, which keeps message boundaries.
    """

    def __init__(self) -> None:
        self._sender, self._receiver = socket.socketpair(
            socket.AF_UNIX, socket.SOCK_SEQPACKET)
        self.fd = self._receiver.fileno()

    def press(self, *keys: bytes) -> None:
        for key in keys:
            self._sender.send(key)

    def type(self, text: str) -> None:
        for byte in text.encode("latin-1"):
            self._sender.send(bytes([byte]))

    def hang_up(self) -> None:
        self._sender.close()

    def close(self) -> None:
        self._sender.close()
        self._receiver.close()


@pytest.fixture
def screen():
    s = Screen()
    yield s
    s.close()


@pytest.fixture
def keyboard():
    if sys.platform != "linux" or not hasattr(socket, "SOCK_SEQPACKET"):
        pytest.skip("needs AF_UNIX SOCK_SEQPACKET sockets")
    k = Keyboard()
    yield k
    k.close()

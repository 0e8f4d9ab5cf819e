from __future__ import annotations

import socket
import threading
from collections import deque

import pytest

from tftpc.constants import MAX_BLOCK_SIZE
from tftpc.net import Inbound, SendResult
from tftpc.packet import Data, Error, ErrorCode, ReadRequest, decode, encode, encode_into

SERVER_ADDR = ("127.0.0.1", 69)
TRANSFER_ADDR = ("127.0.0.1", 40000)


class FakeTransport:
    """Scripted transport. ``inbox`` items are packets, ``None`` (nothing yet) or exceptions."""

    def __init__(self, inbox=(), ack_results=()):
        self.remote_addr = SERVER_ADDR
        self.inbox = deque(inbox)
        self.ack_results = deque(ack_results)
        self.request_result = SendResult.SENT
        self.requests = []
        self.acks = []

    def send_read_request(self, path, mode):
        if isinstance(self.request_result, Exception):
            raise self.request_result
        self.requests.append((path, mode))
        return self.request_result

    def send_ack(self, block_id):
        result = self.ack_results.popleft() if self.ack_results else SendResult.SENT
        if result is SendResult.SENT:
            self.acks.append(block_id)
        return result

    def receive(self, buffer):
        if not self.inbox:
            return None
        item = self.inbox.popleft()
        if item is None:
            return None
        if isinstance(item, Exception):
            raise item
        n = encode_into(item, buffer)
        self.remote_addr = TRANSFER_ADDR
        return Inbound(decode(memoryview(buffer)[:n]), TRANSFER_ADDR, buffer)

    def fileno(self):
        return -1


class FakeServer(threading.Thread):
    """Single-shot TFTP server on loopback that answers from a fresh port."""

    def __init__(self, files, duplicate=False, silent=False):
        super().__init__(daemon=True)
        self.files = files
        self.duplicate = duplicate
        self.silent = silent
        self.requests = []
        self.acks = []
        self.listen = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.listen.bind(("127.0.0.1", 0))
        self.listen.settimeout(5.0)
        self.port = self.listen.getsockname()[1]

    def run(self):
        try:
            raw, client = self.listen.recvfrom(2048)
        except socket.timeout:
            return
        req = decode(raw)
        self.requests.append(req)
        if self.silent:
            return

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as xfer:
            xfer.bind(("127.0.0.1", 0))
            xfer.settimeout(5.0)
            if not isinstance(req, ReadRequest) or req.path not in self.files:
                xfer.sendto(encode(Error(ErrorCode.FILE_NOT_FOUND, "File not found")), client)
                return

            content = self.files[req.path]
            block = 1
            for i in range(0, len(content) + 1, MAX_BLOCK_SIZE):
                pkt = encode(Data(block % 65536, content[i : i + MAX_BLOCK_SIZE]))
                xfer.sendto(pkt, client)
                if self.duplicate:
                    xfer.sendto(pkt, client)
                ack, _ = xfer.recvfrom(16)
                self.acks.append(decode(ack).block_id)
                block += 1

    def close(self):
        self.join(timeout=10.0)
        self.listen.close()


@pytest.fixture
def tftp_server():
    servers = []

    def start(files, **kwargs):
        srv = FakeServer(files, **kwargs)
        srv.start()
        servers.append(srv)
        return srv

    yield start
    for srv in servers:
        srv.close()

import asyncio
import errno
import socket
import time

import pytest

from sacn_receiver import server as server_mod
from sacn_receiver.config_yaml import ServerConfig
from sacn_receiver.events import ServerEvent
from sacn_receiver.membership import MembershipManager


class FakeSocket:
    """Enregistre les setsockopt ; lève ENODEV pour les groupes listés dans fail_groups."""
    def __init__(self, fail_groups=()):
        self.fail_groups = set(fail_groups)
        self.calls = []

    def setsockopt(self, level, opt, value):
        if opt in (socket.IP_ADD_MEMBERSHIP, socket.IP_DROP_MEMBERSHIP):
            group = socket.inet_ntoa(value[:4])
            if group in self.fail_groups:
                raise OSError(errno.ENODEV, "No such device")
        self.calls.append((level, opt, value))

    def groups(self, opt=socket.IP_ADD_MEMBERSHIP):
        return [socket.inet_ntoa(v[:4]) for (_, o, v) in self.calls if o == opt]


@pytest.fixture
def fake_membership(monkeypatch):
    """
    Remplace les adhésions multicast du Server par une FakeSocket : la socket UDP
    reste réelle (bind sur 127.0.0.1), seuls les IP_ADD/DROP_MEMBERSHIP sont simulés.
    """
    state = {"sockets": [], "fail_groups": set()}

    class RecordingMembership(MembershipManager):
        def attach(self, sock):
            fake = FakeSocket(state["fail_groups"])
            state["sockets"].append(fake)
            return super().attach(fake)

    monkeypatch.setattr(server_mod, "MembershipManager", RecordingMembership)
    return state


def local_config(**kw):
    kw.setdefault("port", 0)
    kw.setdefault("bind_address", "127.0.0.1")
    return ServerConfig(**kw)


def record(server):
    events = []
    for ev in ServerEvent:
        server.on(ev, lambda *payload, ev=ev: events.append((ev, payload)))
    return events


def kinds(events):
    return [ev for ev, _ in events]


async def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)

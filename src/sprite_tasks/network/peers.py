# src/sprite_tasks/network/peers.py

from __future__ import annotations

from collections.abc import Iterable


class StaticPeerDirectory:
    """Peer list from configuration. Discovery/heartbeat lives outside this package."""

    def __init__(self, peers: Iterable[str]) -> None:
        self._peers = list(dict.fromkeys(p.strip() for p in peers if p and p.strip()))

    def list_peers(self) -> list[str]:
        return list(self._peers)

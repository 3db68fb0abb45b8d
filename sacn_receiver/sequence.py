# sacn_receiver/sequence.py
from typing import Callable, Dict, Iterator, Optional

# Prédicat de rejet : (dernier numéro vu) -> True si le paquet est périmé.
DiscardPredicate = Callable[[int], bool]

ACCEPTED = "accepted"
OUT_OF_ORDER = "out_of_order"


class SequenceTracker:
    """
    Dernier numéro de séquence vu, par univers.

    La règle de comparaison n'est pas codée ici : elle vient du paquet
    (Packet.discard), on ne fait que tenir l'état.
    """
    def __init__(self):
        self._last: Dict[int, int] = {}

    def __contains__(self, universe: int) -> bool:
        return universe in self._last

    def __iter__(self) -> Iterator[int]:
        return iter(self._last)

    def __len__(self) -> int:
        return len(self._last)

    def track(self, universe: int, initial: int = 0):
        self._last[universe] = initial & 0xFF

    def forget(self, universe: int):
        self._last.pop(universe, None)

    def last(self, universe: int) -> Optional[int]:
        return self._last.get(universe)

    def snapshot(self) -> Dict[int, int]:
        return dict(self._last)

    def check_and_update(self, universe: int, seq: int, discard: DiscardPredicate) -> str:
        last = self._last.get(universe)
        if last is None:
            self._last[universe] = seq & 0xFF
            return ACCEPTED
        if discard(last):
            # un paquet périmé ne fait jamais reculer le compteur
            return OUT_OF_ORDER
        self._last[universe] = seq & 0xFF
        return ACCEPTED

# sacn_receiver/config_yaml.py
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
import os, yaml

from e131.e131 import DEFAULT_PORT, MAX_UNIVERSE, MIN_UNIVERSE, is_valid_universe

DEFAULTS: Dict[str, Any] = {
    "universes": [],
    "port": DEFAULT_PORT,
    "bind": None,
    "mcastif": None,
    "loopback": False,
    "reuse_addr": True,
    "monitor_channels": 12,
    "http_port": None,
}


def normalize_universes(universes) -> Tuple[int, ...]:
    """
    Univers seul ou liste -> tuple trié sans doublons.
    Lève ValueError si un univers sort de 1..63999.
    """
    if universes is None:
        return ()
    if isinstance(universes, int):
        universes = [universes]
    out = []
    for u in universes:
        if not is_valid_universe(u):
            raise ValueError(f"universe must be {MIN_UNIVERSE}..{MAX_UNIVERSE}, got {u!r}")
        if u not in out:
            out.append(u)
    return tuple(sorted(out))


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration figée à la construction du Server.
      universes           : univers rejoints au démarrage (vide = aucun groupe)
      port                : port UDP local (5568 par défaut)
      bind_address        : adresse locale ("" = toutes les interfaces)
      multicast_interface : IP de l'interface locale pour le multicast
      loopback            : IP_MULTICAST_LOOP (écrit dans les deux sens)
      reuse_address       : SO_REUSEADDR (plusieurs récepteurs sur le port sACN)
    """
    universes: Tuple[int, ...] = field(default_factory=tuple)
    port: int = DEFAULT_PORT
    bind_address: Optional[str] = None
    multicast_interface: Optional[str] = None
    loopback: bool = False
    reuse_address: bool = True

    def __post_init__(self):
        object.__setattr__(self, "universes", normalize_universes(self.universes))
        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ValueError(f"port must be 0..65535, got {self.port!r}")
        for name in ("bind_address", "multicast_interface"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{name} must be an IPv4 address string, got {value!r}")

    @classmethod
    def legacy(cls, universes: Optional[Iterable[int]] = 1, port: Optional[int] = None) -> "ServerConfig":
        """Forme positionnelle historique : univers 1 par défaut, pas de SO_REUSEADDR."""
        if universes is None:
            universes = 1
        return cls(universes=universes, port=port or DEFAULT_PORT, reuse_address=False)

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "ServerConfig":
        return cls(
            universes=cfg.get("universes") or (),
            port=int(cfg.get("port") or DEFAULT_PORT),
            bind_address=cfg.get("bind") or None,
            multicast_interface=cfg.get("mcastif") or None,
            loopback=bool(cfg.get("loopback", False)),
            reuse_address=bool(cfg.get("reuse_addr", True)),
        )


def load_config(path: Optional[str]) -> Dict[str, Any]:
    cfg = dict(DEFAULTS)
    if path and os.path.isfile(path):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        for k, v in data.items():
            if k in cfg:
                cfg[k] = v
    return cfg

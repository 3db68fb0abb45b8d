# sacn_receiver/monitor_cli.py
import argparse
import logging

from sacn_receiver.config_loader import load_universes_from_sheet
from sacn_receiver.config_yaml import ServerConfig, load_config
from sacn_receiver.monitor import run_monitor


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="E1.31 (sACN) monitor: join universes and print incoming frames"
    )
    ap.add_argument("--config", help="config.yaml file (optional)")
    ap.add_argument("--universe", type=int, action="append",
                    help="Universe to join (repeatable, overrides the config)")
    ap.add_argument("--sheet", help="Patch sheet (.xlsx/.csv) listing universes to join")
    ap.add_argument("--sheet-column", default="Universe", help="Universe column in the sheet")
    ap.add_argument("--port", type=int, help="UDP port (overrides the config)")
    ap.add_argument("--bind", help="Local address to bind (overrides the config)")
    ap.add_argument("--mcastif", help="Local interface IP for multicast")
    ap.add_argument("--loopback", action="store_true", help="Enable IP_MULTICAST_LOOP")
    ap.add_argument("--channels", type=int, help="Number of channels to print")
    ap.add_argument("--every", type=int, default=1, help="Print one frame out of N per universe")
    ap.add_argument("--http-port", type=int, help="Start the web UI on this port")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def resolve_config(args) -> dict:
    cfg = load_config(args.config)

    # overrides CLI > config file
    if args.sheet:
        cfg["universes"] = load_universes_from_sheet(args.sheet, column=args.sheet_column)
    if args.universe:
        cfg["universes"] = args.universe
    if args.port is not None: cfg["port"] = args.port
    if args.bind: cfg["bind"] = args.bind
    if args.mcastif: cfg["mcastif"] = args.mcastif
    if args.loopback: cfg["loopback"] = True
    if args.channels is not None: cfg["monitor_channels"] = args.channels
    if args.http_port is not None: cfg["http_port"] = args.http_port
    return cfg


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = resolve_config(args)
    run_monitor(
        ServerConfig.from_mapping(cfg),
        channels=cfg["monitor_channels"],
        every=args.every,
        http_port=cfg["http_port"],
    )


if __name__ == "__main__":
    main()

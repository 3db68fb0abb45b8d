# sacn_receiver/webui.py
from flask import Flask, jsonify, request

from e131.e131 import MAX_UNIVERSE, MIN_UNIVERSE
from sacn_receiver.config_yaml import normalize_universes


def create_app(server, stats=None, loop=None) -> Flask:
    """
    Petite API HTTP au-dessus d'un Server en cours d'exécution.
    Si loop est fourni, les modifications sont rejouées sur la boucle asyncio
    du serveur (call_soon_threadsafe) : Flask tourne dans un autre thread.
    """
    app = Flask(__name__)

    def _submit(fn, *args):
        if loop is not None:
            loop.call_soon_threadsafe(fn, *args)
        else:
            fn(*args)

    @app.get("/api/universes")
    def api_universes():
        return jsonify({
            "state": server.state,
            "universes": list(server.universes),
            "last_sequence_numbers": {str(u): s for u, s in server.last_sequence_numbers.items()},
        })

    @app.post("/api/universes")
    def api_set_universes():
        data = request.get_json(force=True, silent=True)
        if not isinstance(data, dict):
            data = {}
        try:
            add = normalize_universes(data.get("add") or [])
            drop = normalize_universes(data.get("drop") or [])
        except (TypeError, ValueError):
            return jsonify({"ok": False,
                            "msg": f"universes must be integers {MIN_UNIVERSE}..{MAX_UNIVERSE}"}), 400
        if server.closed:
            return jsonify({"ok": False, "msg": "server closed"}), 409
        if drop:
            _submit(server.drop_universes, drop)
        if add:
            _submit(server.add_universes, add)
        return jsonify({"ok": True, "add": list(add), "drop": list(drop)})

    @app.get("/api/stats")
    def api_stats():
        if stats is None:
            return jsonify({"ok": False, "msg": "stats disabled"}), 404
        return jsonify(stats.snapshot())

    return app

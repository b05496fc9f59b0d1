# rcv_node/__main__.py
"""
Entry point for running the node as a module:

    python -m rcv_node serve [--host 127.0.0.1] [--port 8000] [--state ./rcv_state.json]
                             [--config-dir .]
    python -m rcv_node keygen

Env toggles (see rcv_node.config):
  RCV_ADMIN=0x...              -> genesis administrator address
  RCV_STRICT_RANKING=1         -> reject empty / repeated ranks
  RCV_REQUIRE_SIGNED_TX=0      -> dev mode, accept unsigned tx with a sender
"""

from __future__ import annotations

import argparse
import json
import sys

from .config import configure_logging, get_bind_host, get_bind_port, load_config


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="rcv-node",
        description="Run the ranked-choice governance ledger node",
    )
    sub = p.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="HTTP port")
    serve.add_argument("--state", default=None, help="Path to state JSON")
    serve.add_argument("--config-dir", default=None, help="Directory holding rcv_config.yaml")

    sub.add_parser("keygen", help="Print a new Ed25519 keypair and its address")
    return p.parse_args(argv)


def _keygen() -> int:
    from .crypto_utils import address_from_public_key, ed25519_generate_keypair

    sk_hex, pk_hex = ed25519_generate_keypair()
    print(
        json.dumps(
            {
                "secret_key": sk_hex,
                "public_key": pk_hex,
                "address": address_from_public_key(pk_hex),
            },
            indent=2,
        )
    )
    return 0


def _serve(args) -> int:
    import uvicorn

    from .api.main import create_app
    from .executor import LedgerExecutor

    cfg = load_config(getattr(args, "config_dir", None))
    if getattr(args, "state", None):
        cfg["persistence"]["state_path"] = args.state
    configure_logging(cfg)

    app = create_app(LedgerExecutor(cfg))
    host = getattr(args, "host", None) or get_bind_host(cfg)
    port = getattr(args, "port", None) or get_bind_port(cfg)
    uvicorn.run(app, host=host, port=port)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.command == "keygen":
        return _keygen()
    if args.command in (None, "serve"):
        return _serve(args)
    print(f"unknown command {args.command}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

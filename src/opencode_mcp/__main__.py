"""
Point d'entrée pour `python -m opencode_mcp`.
"""
import argparse
import dataclasses

import uvicorn

from .config.settings import BridgeSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="opencode-mcp", description="Bridge MCP vers opencode-cli")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Serveur HTTP (défaut)")
    stdio = subparsers.add_parser("stdio", help="Transport JSON-RPC sur stdin/stdout")

    # Options acceptées avant ou après la sous-commande; SUPPRESS évite qu'un
    # sous-parseur écrase la valeur donnée au parseur principal
    for sub, default in ((parser, None), (serve, argparse.SUPPRESS)):
        sub.add_argument("--host", default=default, help="Host (défaut: MCP_ADDR ou 0.0.0.0)")
        sub.add_argument("--port", type=int, default=default, help="Port (défaut: MCP_ADDR ou 9876)")
        sub.add_argument("--reload", action="store_true", default=default or False, help="Activer le reload auto")

    for sub, default in ((parser, None), (serve, argparse.SUPPRESS), (stdio, argparse.SUPPRESS)):
        sub.add_argument("--target", default=default, help="Exécutable cible (défaut: MCP_TARGET ou opencode-cli)")
    return parser


def main(argv=None):
    """Fonction principale."""
    args = build_parser().parse_args(argv)
    settings = BridgeSettings.from_env()
    if args.target:
        settings = dataclasses.replace(settings, target=args.target)

    if args.command == "stdio":
        from .stdio import main as stdio_main

        return stdio_main(settings)

    host = args.host or settings.host
    port = args.port or settings.port

    print(f"🚀 Démarrage du bridge MCP opencode sur {host}:{port} (cible: {settings.target})")

    if args.reload:
        # Le reload recharge le module: la configuration passe par l'environnement
        uvicorn.run("opencode_mcp.main:app", host=host, port=port, reload=True)
        return 0

    from .main import create_app

    uvicorn.run(create_app(settings), host=host, port=port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

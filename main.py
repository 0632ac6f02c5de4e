#!/usr/bin/env python3
"""
Keybound -- developer CLI.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py keygen --out session.pem
  python main.py token --key session.pem --uid <user_id> --sid <session_id> [--expires 3600]

keygen writes a new P-256 private key (PKCS#8 PEM) and prints the hex PKIX
public key to submit as session_secret on register or login. token signs a
bearer token with that private key for the uid/sid the server returned.

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL of the auth database.
  OPERATORS      Operator emails; these accounts resolve to the admin role.
"""

import argparse
import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from auth.keys import encode_session_key
from auth.tokens import generate_session_keypair, private_key_pem, sign_session_token


def _keygen(args: argparse.Namespace) -> int:
    out = Path(args.out)
    if out.exists() and not args.force:
        print(f"  [!] '{out}' already exists. Use --force to overwrite.", file=sys.stderr)
        return 1
    private_key = generate_session_keypair()
    out.write_text(private_key_pem(private_key))
    out.chmod(0o600)
    print(encode_session_key(private_key.public_key()))
    return 0


def _token(args: argparse.Namespace) -> int:
    key_path = Path(args.key).resolve()
    if not key_path.is_file():
        print(f"  [!] '{args.key}' is not a readable file.", file=sys.stderr)
        return 1
    try:
        private_key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
    except (ValueError, TypeError):
        print(f"  [!] '{args.key}' is not an unencrypted PEM private key.", file=sys.stderr)
        return 1
    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        print("  [!] Key is not an elliptic-curve private key.", file=sys.stderr)
        return 1
    print(sign_session_token(private_key, args.uid, args.sid, expire_seconds=args.expires))
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keybound",
        description="Keybound -- per-session public key authentication service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=_serve)

    keygen = sub.add_parser("keygen", help="Create a session key pair; print the public session secret.")
    keygen.add_argument("--out", default="session.pem", help="Where to write the private key.")
    keygen.add_argument("--force", action="store_true", help="Overwrite an existing key file.")
    keygen.set_defaults(func=_keygen)

    token = sub.add_parser("token", help="Sign a bearer token with a session private key.")
    token.add_argument("--key", required=True, help="PEM private key written by keygen.")
    token.add_argument("--uid", required=True, help="user_id returned by register/login.")
    token.add_argument("--sid", required=True, help="session_id returned by register/login.")
    token.add_argument("--expires", type=int, default=0, help="Lifetime in seconds (0 = no exp claim).")
    token.set_defaults(func=_token)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

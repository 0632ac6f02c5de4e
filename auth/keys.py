"""
auth/keys.py -- Session public key codec.

A session secret is the hex encoding of a PKIX (SubjectPublicKeyInfo) DER
public key. Only elliptic-curve keys are accepted: RSA, Ed25519 and anything
that fails to parse are rejected with BadCredentialFormat.

decode_session_key() is the single decode path. The session issuer runs it
when a key is submitted and the token verifier runs it again on the stored
copy, so a key accepted at creation always decodes at verification time.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import binascii

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from auth.errors import BadCredentialFormat


def decode_session_key(secret: str) -> ec.EllipticCurvePublicKey:
    """Decode a hex PKIX DER blob into an EC public key or raise BadCredentialFormat.

    binascii.unhexlify is used rather than bytes.fromhex because fromhex
    tolerates embedded whitespace; the stored secret must be the canonical
    string the client signed up with.
    """
    if not isinstance(secret, str):
        raise BadCredentialFormat("session secret must be a hex string")
    try:
        der = binascii.unhexlify(secret.encode("ascii"))
    except (UnicodeEncodeError, binascii.Error, ValueError) as exc:
        raise BadCredentialFormat("session secret is not valid hex") from exc
    try:
        public_key = serialization.load_der_public_key(der)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise BadCredentialFormat("session secret is not a PKIX public key") from exc
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise BadCredentialFormat("session secret is not an elliptic-curve key")
    return public_key


def encode_session_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Return the hex PKIX DER form a client submits as its session secret."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return der.hex()


def session_key_pem(secret: str) -> str:
    """Decode a stored secret and return it as PEM, the form python-jose verifies with."""
    public_key = decode_session_key(secret)
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")

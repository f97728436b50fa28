"""DPoP proof generation for solid_auth.

Produces sender-constrained proofs (RFC 9449) bound to the HTTP method and
target URI of each outgoing request. Keys are joserfc JWKs, one per
signing algorithm, and are identified by their RFC 7638 SHA-256 thumbprint.

Every call to ``generate_proof`` signs a fresh token with a new ``jti``, so
a proof value is never reused across two requests.
"""

from __future__ import annotations

import time
import uuid
from typing import Iterable, Mapping, Optional, Union

from joserfc import jwk
from joserfc import jwt as jose_jwt
from joserfc.errors import JoseError

from solid_auth.errors import ProofGenerationError
from solid_auth.observability import get_logger
from solid_auth.utils.sanitization import sanitize_url

logger = get_logger(__name__)

DPOP_JWT_TYPE = "dpop+jwt"
DEFAULT_ALGORITHM = "ES256"
DEFAULT_RSA_KEY_SIZE = 2048

AsymmetricKey = Union[jwk.ECKey, jwk.RSAKey, jwk.OKPKey]

_EC_CURVES = {"ES256": "P-256", "ES384": "P-384", "ES512": "P-521"}
_RSA_ALGORITHMS = ("RS256", "RS384", "RS512", "PS256", "PS384", "PS512")
_OKP_ALGORITHMS = ("EdDSA",)

_KEY_TYPES = {
    **{alg: "EC" for alg in _EC_CURVES},
    **{alg: "RSA" for alg in _RSA_ALGORITHMS},
    **{alg: "OKP" for alg in _OKP_ALGORITHMS},
}
_CANONICAL_NAMES = {alg.lower(): alg for alg in _KEY_TYPES}


def canonical_algorithm(algorithm: str) -> Optional[str]:
    """Return the JOSE spelling of ``algorithm`` (matched case-insensitively)."""
    return _CANONICAL_NAMES.get(algorithm.lower())


def generate_key_pair(algorithm: str = DEFAULT_ALGORITHM) -> AsymmetricKey:
    """Generate a private JWK suitable for signing proofs with ``algorithm``.

    Args:
        algorithm: JWS algorithm name, e.g. "ES256", "PS256" or "EdDSA".

    Returns:
        A private joserfc key.

    Raises:
        ProofGenerationError: If the algorithm is not an asymmetric JWS algorithm.
    """
    alg = canonical_algorithm(algorithm)
    if alg is None:
        raise ProofGenerationError(algorithm)
    if alg in _EC_CURVES:
        return jwk.ECKey.generate_key(_EC_CURVES[alg])
    if alg in _RSA_ALGORITHMS:
        return jwk.RSAKey.generate_key(DEFAULT_RSA_KEY_SIZE)
    return jwk.OKPKey.generate_key("Ed25519")


class ProofGenerator:
    """DPoP proof generator holding one key pair per signing algorithm.

    When no key pairs are supplied an ES256 key pair is generated, so a
    generator always supports at least one algorithm.

    Example:
        >>> generator = ProofGenerator()
        >>> proof = generator.generate_proof("ES256", "https://pod.example/data", "GET")
        >>> generator.lookup_algorithm(generator.lookup_thumbprint("ES256"))
        'ES256'
    """

    def __init__(self, key_pairs: Optional[Mapping[str, AsymmetricKey]] = None) -> None:
        """Initialize the generator.

        Args:
            key_pairs: Mapping of JWS algorithm to private key. Algorithm names
                are matched case-insensitively.

        Raises:
            ProofGenerationError: If an algorithm is unknown or its key has
                the wrong key type.
        """
        if not key_pairs:
            key_pairs = {DEFAULT_ALGORITHM: generate_key_pair(DEFAULT_ALGORITHM)}

        self._keys: dict[str, AsymmetricKey] = {}
        self._thumbprints: dict[str, str] = {}
        self._algorithms_by_thumbprint: dict[str, str] = {}
        for name, key in key_pairs.items():
            alg = canonical_algorithm(name)
            if alg is None:
                raise ProofGenerationError(name)
            if key.key_type != _KEY_TYPES[alg]:
                raise ProofGenerationError(
                    name, details={"key_type": key.key_type, "expected": _KEY_TYPES[alg]}
                )
            thumbprint = key.thumbprint()
            self._keys[alg] = key
            self._thumbprints[alg] = thumbprint
            self._algorithms_by_thumbprint[thumbprint] = alg

    def algorithms(self) -> frozenset[str]:
        """Return the algorithms this generator can sign with."""
        return frozenset(self._keys)

    def lookup_thumbprint(self, algorithm: str) -> Optional[str]:
        alg = canonical_algorithm(algorithm)
        if alg is None:
            return None
        return self._thumbprints.get(alg)

    def lookup_algorithm(self, thumbprint: str) -> Optional[str]:
        return self._algorithms_by_thumbprint.get(thumbprint)

    def select_algorithm(self, candidates: Iterable[str]) -> Optional[str]:
        """Return the first of ``candidates`` this generator supports."""
        for candidate in candidates:
            alg = canonical_algorithm(candidate)
            if alg is not None and alg in self._keys:
                return alg
        return None

    def public_jwk(self, algorithm: str) -> dict[str, object]:
        """Return the public JWK for ``algorithm``.

        Raises:
            ProofGenerationError: If no key is configured for the algorithm.
        """
        _, key = self._key_for(algorithm)
        return dict(key.as_dict(private=False))

    def generate_proof(self, algorithm: str, uri: str, method: str) -> str:
        """Sign a fresh DPoP proof for one request.

        Args:
            algorithm: Signing algorithm; must be one of ``algorithms()``.
            uri: Target URI, carried verbatim in the ``htu`` claim.
            method: HTTP method, carried upper-cased in the ``htm`` claim.

        Returns:
            Compact-serialized JWS with ``typ`` "dpop+jwt".

        Raises:
            ProofGenerationError: If the algorithm was not configured or
                signing fails.
        """
        alg, key = self._key_for(algorithm)
        header = {
            "typ": DPOP_JWT_TYPE,
            "alg": alg,
            "jwk": dict(key.as_dict(private=False)),
        }
        claims = {
            "jti": str(uuid.uuid4()),
            "htm": method.upper(),
            "htu": uri,
            "iat": int(time.time()),
        }
        try:
            proof = jose_jwt.encode(header, claims, key, algorithms=[alg])
        except JoseError as exc:
            raise ProofGenerationError(algorithm, details={"error": str(exc)}) from exc
        logger.debug(
            "solid_auth.dpop.proof_generated",
            algorithm=alg,
            htm=claims["htm"],
            htu=sanitize_url(uri),
        )
        return proof

    def _key_for(self, algorithm: str) -> tuple[str, AsymmetricKey]:
        alg = canonical_algorithm(algorithm)
        if alg is None or alg not in self._keys:
            raise ProofGenerationError(algorithm)
        return alg, self._keys[alg]

import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from typing import Optional

from core.exceptions import InvalidSeed

SERVER_SEED_BYTES = 32
MAX_CLIENT_SEED_LENGTH = 64
DRAW_HEX_DIGITS = 8

_SERVER_SEED_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def commit():
    """
    Fresh server seed plus the hash published before the round resolves.
    """
    server_seed = secrets.token_hex(SERVER_SEED_BYTES)
    return server_seed, sha256_hex(server_seed)


def generate_client_seed() -> str:
    return secrets.token_hex(8)


def validate_client_seed(client_seed):
    if not isinstance(client_seed, str) or not 1 <= len(client_seed) <= MAX_CLIENT_SEED_LENGTH:
        raise InvalidSeed(f"client_seed must be 1-{MAX_CLIENT_SEED_LENGTH} characters")
    if ":" in client_seed or not client_seed.isprintable():
        raise InvalidSeed("client_seed must be printable and must not contain ':'")


def validate_seed_triple(server_seed, client_seed, nonce):
    if not isinstance(server_seed, str) or not _SERVER_SEED_RE.match(server_seed):
        raise InvalidSeed("server_seed must be 64 hex characters")
    validate_client_seed(client_seed)
    if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
        raise InvalidSeed("nonce must be a non-negative integer")


def round_digest(server_seed: str, client_seed: str, nonce: int) -> str:
    validate_seed_triple(server_seed, client_seed, nonce)
    return sha256_hex(f"{server_seed}:{client_seed}:{nonce}")


def draw_from_digest(digest: str, range_size: Optional[int] = None) -> int:
    value = int(digest[:DRAW_HEX_DIGITS], 16)
    if range_size is None:
        return value
    return value % range_size


def draw(server_seed: str, client_seed: str, nonce: int, range_size: int) -> int:
    if isinstance(range_size, bool) or not isinstance(range_size, int) or range_size <= 0:
        raise InvalidSeed("range_size must be a positive integer")
    return draw_from_digest(round_digest(server_seed, client_seed, nonce), range_size)


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    commitment: str
    digest: str
    draw: int

    def __bool__(self):
        return self.valid


def verify(server_seed, client_seed, nonce, expected_hash, range_size=None) -> VerificationResult:
    """
    Recompute the commitment for a revealed seed and compare it to the
    published hash. The recomputed draw is reported whether or not the
    commitment matches.
    """
    digest = round_digest(server_seed, client_seed, nonce)
    if range_size is not None and (isinstance(range_size, bool) or not isinstance(range_size, int) or range_size <= 0):
        raise InvalidSeed("range_size must be a positive integer")

    commitment = sha256_hex(server_seed)
    valid = hmac.compare_digest(commitment, str(expected_hash or "").lower())
    return VerificationResult(
        valid=valid,
        commitment=commitment,
        digest=digest,
        draw=draw_from_digest(digest, range_size),
    )

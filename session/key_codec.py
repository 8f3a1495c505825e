"""
Record key derivation for session identifiers.

A session id is either stored verbatim or replaced by the hex digest of
`salt + sid` under a configurable hash algorithm. Derivation is pure, so
every process configured with the same salt and algorithm converges on the
same record for the same logical session.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from errors.exceptions import invalid_configuration

DEFAULT_HASH_SALT = "connect-foundationdb"
DEFAULT_HASH_ALGORITHM = "sha1"

DATA_PREFIX = "data"


@dataclass(frozen=True)
class HashConfig:
    """
    Session id hashing options.

    Attributes:
        salt: String prepended to the session id before hashing.
        algorithm: Any name accepted by hashlib.new().
    """
    salt: str = DEFAULT_HASH_SALT
    algorithm: str = DEFAULT_HASH_ALGORITHM

    @classmethod
    def from_option(
        cls,
        option: Union[None, bool, "HashConfig", Mapping[str, Any]]
    ) -> Optional["HashConfig"]:
        """
        Build a HashConfig from the `hash` store option.

        None/False disables hashing, True uses the defaults, a mapping may
        override `salt` and/or `algorithm`. Empty values fall back to the
        defaults.
        """
        if option is None or option is False:
            return None
        if option is True:
            return cls()
        if isinstance(option, cls):
            return option
        if isinstance(option, Mapping):
            return cls(
                salt=option.get("salt") or DEFAULT_HASH_SALT,
                algorithm=option.get("algorithm") or DEFAULT_HASH_ALGORITHM,
            )
        raise invalid_configuration(
            "hash option must be a bool, a mapping or a HashConfig",
            details={"hash": repr(option)}
        )


class KeyCodec:
    """
    Derives the namespace-relative record key for a session id.

    The unsupported-algorithm check happens once, in the constructor, so
    per-call derivation cannot fail on configuration.
    """

    def __init__(self, hash_config: Optional[HashConfig] = None):
        self.hash_config = hash_config
        if hash_config is not None:
            try:
                hashlib.new(hash_config.algorithm)
            except (ValueError, TypeError) as e:
                raise invalid_configuration(
                    f"Unsupported hash algorithm: {hash_config.algorithm}",
                    details={"algorithm": hash_config.algorithm}
                ) from e

    @property
    def hashing(self) -> bool:
        return self.hash_config is not None

    def effective_id(self, sid: str) -> str:
        """Return the identifier actually stored: the sid or its hex digest."""
        if self.hash_config is None:
            return sid
        digest = hashlib.new(self.hash_config.algorithm)
        digest.update((self.hash_config.salt + sid).encode("utf-8"))
        # Variable-length digests (shake_*) need an explicit length
        if digest.digest_size == 0:
            return digest.hexdigest(32)
        return digest.hexdigest()

    def derive_key(self, sid: str) -> Tuple[str, str]:
        """Tuple key of the record under the store namespace."""
        return (DATA_PREFIX, self.effective_id(sid))

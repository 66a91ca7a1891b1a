import hashlib
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519


class NodeIdentity:
    """Ephemeral ed25519 identity of a node. Regenerated on every start."""

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        self.public_key = private_key.public_key()
        self.public_bytes = self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        self.peer_id = hashlib.sha256(self.public_bytes).hexdigest()

    @classmethod
    def generate(cls) -> 'NodeIdentity':
        return cls(ed25519.Ed25519PrivateKey.generate())

    def __str__(self) -> str:
        return self.peer_id

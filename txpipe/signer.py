"""Local ed25519 signer backed by PyNaCl"""

from typing import Dict, Iterable, List, Optional, Sequence

from nacl.signing import SigningKey

from .address import Address
from .errors import CapabilityUnsupported
from .interfaces import SignerCapabilities


class Keypair:
    """ed25519 keypair"""

    def __init__(self, signing_key: Optional[SigningKey] = None):
        self._signing_key = signing_key or SigningKey.generate()
        self.address = Address(bytes(self._signing_key.verify_key))

    @classmethod
    def from_seed(cls, seed: bytes) -> 'Keypair':
        return cls(SigningKey(seed))

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature


class KeypairSigner:
    """Signer holding one or more local keypairs"""

    def __init__(self, keypairs: Iterable[Keypair], capabilities: Optional[SignerCapabilities] = None):
        self._keypairs = {kp.address: kp for kp in keypairs}
        self._capabilities = capabilities or SignerCapabilities(
            supports_partial_sign=True,
            supports_resign=True,
            supports_fee_payer_swap=True,
        )

    def capabilities(self) -> SignerCapabilities:
        return self._capabilities

    def addresses(self) -> List[Address]:
        return list(self._keypairs)

    def sign(self, message: bytes, for_addresses: Sequence[Address]) -> Dict[Address, bytes]:
        """Sign message for every requested address this signer holds"""
        unknown = [str(a) for a in for_addresses if a not in self._keypairs]
        if unknown and not self._capabilities.supports_partial_sign:
            raise CapabilityUnsupported(f"Partial signing not supported; no key for {', '.join(unknown)}")
        return {
            address: self._keypairs[address].sign(message)
            for address in for_addresses
            if address in self._keypairs
        }

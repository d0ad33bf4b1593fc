import hashlib
import time

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from flask import current_app

from guessgame.fhe import derive_key, parse_hex
from guessgame.fhe.coprocessor import SIGNATURE_SIZE
from guessgame.services.games.errors import AccessDenied

WORD_SIZE = 32


def encode_cleartexts(values) -> str:
    """Pack cleartexts as 32-byte big-endian words, hex encoded."""
    return '0x' + b''.join(int(v).to_bytes(WORD_SIZE, 'big') for v in values).hex()


def decode_cleartexts(cleartexts: str):
    raw = parse_hex(cleartexts)
    if not raw or len(raw) % WORD_SIZE:
        raise ValueError('cleartexts must be a non-empty sequence of 32-byte words')
    return [int.from_bytes(raw[i:i + WORD_SIZE], 'big') for i in range(0, len(raw), WORD_SIZE)]


class KeyManagementService:
    """Threshold-decryption stand-in answering public decryption requests.

    The response is the ABI-style cleartext payload plus an Ed25519 signature
    binding it to the request id, the requested handles and this instance.
    Consumers verify with ``verify`` and never need the signing key.
    """

    def __init__(self, app=None):
        self.instance_id = None
        self._signer = None
        self.verify_key = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.instance_id = app.config['INSTANCE_ID']
        self._signer = Ed25519PrivateKey.from_private_bytes(derive_key(app.config['FHE_KEY_SEED'], b'guessgame/kms'))
        self.verify_key = self._signer.public_key()
        app.extensions['kms'] = self

    def _digest(self, request_id: int, handles, cleartexts: str) -> bytes:
        h = hashlib.sha256()
        h.update(f'decrypt|{self.instance_id}|{int(request_id)}'.encode())
        for handle in handles:
            h.update(b'|' + handle.lower().encode())
        h.update(b'|' + parse_hex(cleartexts))
        return h.digest()

    def fulfil(self, request_id: int, handles):
        """Decrypt ``handles`` for a registered request; returns ``(cleartexts, proof)``."""
        coprocessor = current_app.extensions['coprocessor']
        started = time.time()
        values = []
        for handle in handles:
            if not coprocessor.is_publicly_decryptable(handle):
                raise AccessDenied(f'Handle {handle} is not marked for public decryption')
            values.append(coprocessor.decrypt(handle))
        cleartexts = encode_cleartexts(values)
        proof = self._signer.sign(self._digest(request_id, handles, cleartexts))
        current_app.logger.info(
            f"[kms-fulfil] request={request_id} handles={len(handles)} took={time.time() - started:.3f}s"
        )
        return cleartexts, '0x' + proof.hex()

    def verify(self, request_id: int, handles, cleartexts: str, proof: str) -> bool:
        try:
            signature = parse_hex(proof)
            if len(signature) != SIGNATURE_SIZE:
                return False
            self.verify_key.verify(signature, self._digest(request_id, handles, cleartexts))
        except (ValueError, TypeError, InvalidSignature):
            return False
        return True

import hashlib
import os
import secrets

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from guessgame import db
from guessgame.fhe import derive_key, parse_hex
from guessgame.models import Ciphertext
from guessgame.services.games.errors import AccessDenied, UnknownHandle

UINT8_MAX = 255
SIGNATURE_SIZE = 64


class Coprocessor:
    """Holds encrypted values behind opaque handles.

    Values enter the store either as user inputs (returned with an input
    proof bound to the submitter and to this instance) or as confidential
    random draws. Plaintext only leaves through ``decrypt`` which is reserved
    for the KMS and for owners decrypting their own values.
    """

    def __init__(self, app=None):
        self.instance_id = None
        self._aead = None
        self._signer = None
        self.verify_key = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        seed = app.config['FHE_KEY_SEED']
        self.instance_id = app.config['INSTANCE_ID']
        self._aead = AESGCM(derive_key(seed, b'guessgame/network-key'))
        self._signer = Ed25519PrivateKey.from_private_bytes(derive_key(seed, b'guessgame/input-verifier'))
        self.verify_key = self._signer.public_key()
        app.extensions['coprocessor'] = self

    def _store(self, value: int, owner=None) -> Ciphertext:
        nonce = os.urandom(12)
        blob = self._aead.encrypt(nonce, value.to_bytes(1, 'big'), self.instance_id.encode())
        handle = '0x' + hashlib.sha256(nonce + blob).hexdigest()
        ct = Ciphertext(handle=handle, nonce=nonce, blob=blob, owner=owner)
        db.session.add(ct)
        return ct

    def _input_digest(self, handle: str, submitter: str) -> bytes:
        material = '|'.join(('input', self.instance_id, submitter.lower(), handle.lower()))
        return hashlib.sha256(material.encode()).digest()

    def encrypt_input(self, value: int, submitter: str):
        """Encrypt a uint8 on behalf of ``submitter``; returns ``(handle, proof)``."""
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT8_MAX:
            raise ValueError('value must be an integer in [0, 255]')
        ct = self._store(value, owner=submitter)
        proof = self._signer.sign(self._input_digest(ct.handle, submitter))
        return ct.handle, '0x' + proof.hex()

    def random_encrypted(self, low: int, high: int) -> str:
        """Draw a uniform value in [low, high] and return only its handle."""
        ct = self._store(low + secrets.randbelow(high - low + 1))
        return ct.handle

    def verify_input(self, handle: str, submitter: str, proof: str) -> bool:
        if not isinstance(handle, str) or db.session.get(Ciphertext, handle) is None:
            return False
        try:
            signature = parse_hex(proof)
            if len(signature) != SIGNATURE_SIZE:
                return False
            self.verify_key.verify(signature, self._input_digest(handle, submitter))
        except (ValueError, InvalidSignature):
            return False
        return True

    def allow_public_decryption(self, handles):
        for handle in handles:
            self._load(handle).publicly_decryptable = True

    def _load(self, handle: str) -> Ciphertext:
        ct = db.session.get(Ciphertext, handle) if isinstance(handle, str) else None
        if ct is None:
            raise UnknownHandle(f'No ciphertext for handle {handle}')
        return ct

    def decrypt(self, handle: str) -> int:
        ct = self._load(handle)
        plain = self._aead.decrypt(ct.nonce, ct.blob, self.instance_id.encode())
        return int.from_bytes(plain, 'big')

    def user_decrypt(self, handle: str, account: str) -> int:
        ct = self._load(handle)
        if ct.owner is None or ct.owner != account:
            raise AccessDenied('Handle is not decryptable by this account')
        return self.decrypt(handle)

    def is_publicly_decryptable(self, handle: str) -> bool:
        return self._load(handle).publicly_decryptable

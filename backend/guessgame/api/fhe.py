from cryptography.hazmat.primitives import serialization
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from guessgame import db, coprocessor, kms
from guessgame.models import VALUE_MIN, VALUE_MAX
from guessgame.services.games.oracle import pending_request


fhe = Blueprint('fhe', __name__)


def _raw_public(key) -> str:
    return '0x' + key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw).hex()


@fhe.route('/keys', methods=['GET'])
def public_keys():
    return jsonify({
        'instance_id': coprocessor.instance_id,
        'input_verifier': _raw_public(coprocessor.verify_key),
        'kms': _raw_public(kms.verify_key),
    })


@fhe.route('/inputs', methods=['POST'])
@login_required
def encrypt_input():
    """Encrypt a guess for the current account and return its handle and input proof."""
    data = request.get_json(silent=True) or {}
    value = data.get('value')
    if isinstance(value, int) and not isinstance(value, bool) and not VALUE_MIN <= value <= VALUE_MAX:
        return jsonify({'error': 'invalid_value', 'message': f'Guesses lie in [{VALUE_MIN}, {VALUE_MAX}]'}), 400
    try:
        handle, proof = coprocessor.encrypt_input(value, current_user.address)
    except ValueError as exc:
        return jsonify({'error': 'invalid_value', 'message': str(exc)}), 400
    db.session.commit()
    return jsonify({'handle': handle, 'proof': proof}), 201


@fhe.route('/user-decrypt', methods=['POST'])
@login_required
def user_decrypt():
    data = request.get_json(silent=True) or {}
    value = coprocessor.user_decrypt(data.get('handle'), current_user.address)
    return jsonify({'handle': data.get('handle'), 'value': value})


@fhe.route('/requests/<int:request_id>/fulfil', methods=['POST'])
def fulfil_request(request_id):
    """KMS side of a public decryption: cleartexts plus proof for a pending request."""
    decryption_request = pending_request(request_id)
    cleartexts, proof = kms.fulfil(decryption_request.id, decryption_request.handle_list)
    return jsonify({'request_id': decryption_request.id, 'cleartexts': cleartexts, 'proof': proof})

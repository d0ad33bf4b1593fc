from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from guessgame import db
from guessgame.models import Account

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the GuessGame escrow server!'})

@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    if not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Missing username or password'}), 400
    if Account.query.filter_by(username=data['username']).first():
        return jsonify({"success": False, "message": "Username already exists"}), 400

    account = Account(username=data['username'], balance=current_app.config['INITIAL_BALANCE'])
    account.set_password(data['password'])
    db.session.add(account)
    db.session.commit()
    login_user(account)
    return jsonify({"success": True, "user": account.to_dict()}), 201

@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    account = Account.query.filter_by(username=data.get('username')).first()
    if account and account.check_password(data.get('password') or ''):
        login_user(account, remember=True)
        return jsonify({"success": True, "user": account.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401

@main.route('/check_login', methods=['GET'])
@login_required
def check_login():
    return jsonify({"success": True, "user": current_user.to_dict()})

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})

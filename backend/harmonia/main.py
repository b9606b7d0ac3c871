from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from harmonia import db
from harmonia.api import json_body
from harmonia.errors import AuthenticationError, ConflictError, ValidationError
from harmonia.models import Profile

main = Blueprint('main', __name__)

@main.route('/')
@main.route('/health')
def index():
    return jsonify({
        'status': 'ok',
        'service': 'Harmonia API',
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })

@main.route('/users/add', methods=['POST'])
def add_user():
    """Self-registration; always creates a player account."""
    data = json_body()
    username = data.get('username')
    password = data.get('password')
    if not isinstance(username, str) or not username.strip() or not isinstance(password, str) or not password:
        raise ValidationError('Missing username or password')

    if Profile.query.filter_by(username=username.strip()).first():
        raise ConflictError('Username already exists')

    user = Profile(username=username.strip(), nom=data.get('nom'), prenom=data.get('prenom'))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[register] user={user.id}")

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201

@main.route('/login', methods=['POST'])
def login():
    data = json_body()
    user = Profile.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    raise AuthenticationError('Invalid username or password')

@main.route('/logout')
@login_required
def logout():
    current_app.logger.info(f"[logout] user={current_user.id}")
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})

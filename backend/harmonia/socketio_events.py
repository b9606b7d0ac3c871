from flask_socketio import join_room, leave_room, emit
from harmonia import socketio


def party_room(party_id) -> str:
    return f"party:{party_id}"


def emit_run_update(run, state: str) -> None:
    """Tell everyone watching the run's party that its state moved.

    Carries flags only, never answers or scores.
    """
    socketio.emit('run_update', {
        'run_id': run.id,
        'party_id': run.party_id,
        'state': state,
        'is_visible': run.is_visible,
        'is_closed': run.is_closed,
        'reveal_answers': run.reveal_answers,
    }, to=party_room(run.party_id), namespace='/ws')


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_party(data):
    party_id = (data or {}).get('party_id')
    if not party_id:
        emit('error', {'message': 'party_id is required'})
        return
    room = party_room(party_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_party(data):
    party_id = (data or {}).get('party_id')
    if not party_id:
        emit('error', {'message': 'party_id is required'})
        return
    room = party_room(party_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_party', handle_join_party, namespace='/ws')
    socketio.on_event('leave_party', handle_leave_party, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_party', handle_join_party, namespace='/')
        socketio.on_event('leave_party', handle_leave_party, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')

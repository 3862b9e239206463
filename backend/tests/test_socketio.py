from tuna_adventure import socketio, SOCKET_NAMESPACE

NS = SOCKET_NAMESPACE


def names(client):
    return [pkt['name'] for pkt in client.get_received(NS)]


def received(client, event):
    return [pkt['args'][0] for pkt in client.get_received(NS) if pkt['name'] == event]


def join_as_admin(admin_sio):
    admin_sio.emit('admin-join', {}, namespace=NS)
    admin_sio.get_received(NS)


def test_team_join_registers_presence(runtime, sio_client, admin_sio):
    join_as_admin(admin_sio)
    sio_client.emit('team-join', {'teamId': sio_client.team_id, 'teamName': 'Blue Fins'}, namespace=NS)
    events = sio_client.get_received(NS)
    joined = [e for e in events if e['name'] == 'joined']
    assert joined and joined[0]['args'][0]['room'] == f'team:{sio_client.team_id}'
    assert any(e['name'] == 'game-state-update' for e in events)
    assert runtime.cache.is_team_connected(sio_client.team_id)

    notices = received(admin_sio, 'team-connected')
    assert notices[0]['teamId'] == sio_client.team_id
    assert notices[0]['connectedCount'] == 1


def test_duplicate_join_is_idempotent(runtime, sio_client, admin_sio):
    join_as_admin(admin_sio)
    for _ in range(2):
        sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    assert len(received(admin_sio, 'team-connected')) == 1
    assert len(runtime.cache.get_connected_teams()) == 1


def test_stale_socket_disconnect_keeps_newer_connection(flask_app, runtime, team_client, sio_client, admin_sio):
    join_as_admin(admin_sio)
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    second_tab = socketio.test_client(flask_app, flask_test_client=team_client, namespace=NS)
    second_tab.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    admin_sio.get_received(NS)

    sio_client.disconnect(namespace=NS)
    assert runtime.cache.is_team_connected(sio_client.team_id)
    assert 'team-disconnected' not in names(admin_sio)

    second_tab.disconnect(namespace=NS)
    assert not runtime.cache.is_team_connected(sio_client.team_id)
    assert received(admin_sio, 'team-disconnected')[0]['reason'] == 'disconnect'


def test_kicked_team_join_is_refused(runtime, sio_client):
    runtime.cache.kick_team(sio_client.team_id)
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    events = sio_client.get_received(NS)
    assert [e['name'] for e in events] == ['team-kicked']
    assert not runtime.cache.is_team_connected(sio_client.team_id)


def test_team_cannot_join_as_another_team(sio_client):
    sio_client.emit('team-join', {'teamId': sio_client.team_id + 100}, namespace=NS)
    errors = received(sio_client, 'error')
    assert errors and 'another team' in errors[0]['message']


def test_progress_is_relayed_from_cache(runtime, sio_client, admin_sio):
    join_as_admin(admin_sio)
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    admin_sio.get_received(NS)
    sio_client.emit('team-progress', {
        'teamId': sio_client.team_id, 'currentPosition': 7, 'totalScore': 500, 'isCompleted': True,
    }, namespace=NS)
    update = received(admin_sio, 'team-progress-update')[0]
    assert update['currentPosition'] == 1
    assert update['totalScore'] == 0
    assert update['isCompleted'] is False


def test_request_game_state(sio_client):
    sio_client.get_received(NS)
    sio_client.emit('request-game-state', {}, namespace=NS)
    state = received(sio_client, 'game-state-update')[0]
    assert state['phase'] == 'waiting'
    assert state['currentPosition'] == 0
    assert 'timestamp' in state


def test_admin_join_requires_admin_login(sio_client):
    sio_client.emit('admin-join', {}, namespace=NS)
    assert received(sio_client, 'error')[0]['message'] == 'Admin access required'
    sio_client.emit('start-all', {}, namespace=NS)
    assert received(sio_client, 'error')[0]['message'] == 'Admin access required'


def test_admin_commands_fan_out(runtime, sio_client, admin_sio):
    join_as_admin(admin_sio)
    sio_client.get_received(NS)

    admin_sio.emit('start-all', {}, namespace=NS)
    team_events = names(sio_client)
    assert 'game-started' in team_events
    assert 'game-state-update' in team_events
    assert runtime.cache.get_game_state()['phase'] == 'running'

    admin_sio.emit('advance-all', {}, namespace=NS)
    advanced = received(sio_client, 'game-advanced')
    assert advanced[0]['currentPosition'] == 2

    admin_sio.emit('start-all', {}, namespace=NS)
    assert received(admin_sio, 'error')[0]['message'] == 'Game is already running'

    admin_sio.emit('end-all', {}, namespace=NS)
    assert 'game-ended' in names(sio_client)
    admin_sio.emit('reset-all', {}, namespace=NS)
    assert 'game-reset' in names(sio_client)
    assert runtime.cache.get_game_state()['phase'] == 'waiting'


def test_admin_kick_notifies_team_and_admins(runtime, sio_client, admin_sio):
    join_as_admin(admin_sio)
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    sio_client.get_received(NS)
    admin_sio.get_received(NS)

    admin_sio.emit('kick-team', {'teamId': sio_client.team_id}, namespace=NS)
    assert received(sio_client, 'team-kicked')[0]['teamId'] == sio_client.team_id
    admin_events = names(admin_sio)
    assert 'team-kicked' in admin_events
    assert 'team-disconnected' in admin_events
    assert runtime.cache.is_team_kicked(sio_client.team_id)
    assert not runtime.cache.is_team_connected(sio_client.team_id)

    admin_sio.emit('unban-team', {'teamId': sio_client.team_id}, namespace=NS)
    assert not runtime.cache.is_team_kicked(sio_client.team_id)

    admin_sio.emit('kick-team', {}, namespace=NS)
    assert received(admin_sio, 'error')[0]['message'] == 'teamId is required'


def test_decision_notify_uses_recorded_score(runtime, team_client, sio_client, admin_sio, running_game):
    join_as_admin(admin_sio)
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    team_client.post('/api/game/decisions', json={'position': 1, 'decision': 'x', 'rationale': 'y'})
    admin_sio.get_received(NS)

    sio_client.emit('decision-notify', {'teamId': sio_client.team_id, 'position': 1, 'score': 15}, namespace=NS)
    notice = received(admin_sio, 'team-decision-submitted')[0]
    assert notice['score'] == runtime.cache.get_team(sio_client.team_id)['decisions'][0]['score']
    assert notice['score'] != 15


def test_anonymous_socket_cannot_join_a_team(flask_app, runtime, sio_client):
    sio_client.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
    live_sid = runtime.cache.get_connected_teams()[sio_client.team_id]['sid']
    anonymous = socketio.test_client(flask_app, flask_test_client=flask_app.test_client(), namespace=NS)
    try:
        anonymous.get_received(NS)
        anonymous.emit('team-join', {'teamId': sio_client.team_id}, namespace=NS)
        assert received(anonymous, 'error')[0]['message'] == 'Team access required'
        assert runtime.cache.get_connected_teams()[sio_client.team_id]['sid'] == live_sid
    finally:
        anonymous.disconnect(namespace=NS)
    assert runtime.cache.is_team_connected(sio_client.team_id)

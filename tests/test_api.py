import io

from openpyxl import Workbook

from app.extensions import db
from app.models import ActivityLog, Agenda, AgendaStatus, User, UserStatus
from tests.conftest import ADMIN_EMAIL, GURU_EMAIL, PASSWORD, agenda_payload, login


def _assert_envelope(response, status_code, success):
    body = response.get_json()
    assert response.status_code == status_code
    assert body['success'] is success
    assert body['status_code'] == status_code
    assert 'timestamp' in body
    return body


def _agenda_for(services, creator_id, **overrides):
    return services.agendas.create(agenda_payload(**overrides), creator_id).id


# =========================================================
# AUTH
# =========================================================

def test_login_returns_user_with_permissions(client, users):
    body = _assert_envelope(login(client, GURU_EMAIL), 200, True)

    user = body['data']['user']
    assert user['role'] == 'guru'
    assert user['permissions'] == ['create_agenda', 'edit_own_agenda', 'view_own_agendas']
    assert 'password_hash' not in user
    assert ActivityLog.query.filter_by(action='login', user_id=users['guru']).count() == 1


def test_login_wrong_password(client, users):
    body = _assert_envelope(login(client, GURU_EMAIL, 'salah-total'), 401, False)

    assert body['message'] == 'Password salah'
    assert ActivityLog.query.filter_by(action='login_failed', user_id=users['guru']).count() == 1


def test_login_rejects_non_school_domain(client, users):
    _assert_envelope(login(client, 'budi@gmail.com'), 422, False)


def test_login_inactive_account(client, users):
    db.session.get(User, users['siswa']).status = UserStatus.INACTIVE
    db.session.commit()

    _assert_envelope(login(client, 'siti@smkn1kotabekasi.sch.id'), 401, False)


def test_login_requires_fields(client, users):
    response = client.post('/login', json={'email': ''})
    body = _assert_envelope(response, 422, False)
    assert 'email' in body['errors']


def test_me_and_logout(guru_client, users):
    body = _assert_envelope(guru_client.get('/me'), 200, True)
    assert body['data']['user']['id'] == users['guru']

    _assert_envelope(guru_client.post('/logout'), 200, True)
    _assert_envelope(guru_client.get('/me'), 401, False)


def test_unauthenticated_request_gets_json_401(client, users):
    body = _assert_envelope(client.get('/agendas'), 401, False)
    assert body['message'] == 'Silakan login terlebih dahulu'


def test_unknown_method_uses_envelope(client):
    _assert_envelope(client.get('/login'), 405, False)


# =========================================================
# AGENDA
# =========================================================

def test_guru_create_ignores_requested_status(guru_client, users):
    response = guru_client.post('/agendas', json=agenda_payload(status='approved', created_by=users['admin']))
    body = _assert_envelope(response, 201, True)

    agenda = body['data']['agenda']
    assert body['data']['agenda_id'] == agenda['id']
    assert agenda['status'] == 'pending'
    assert agenda['created_by'] == users['guru']
    assert agenda['waktu'] == '09:00'


def test_admin_create_can_start_approved(admin_client, users):
    response = admin_client.post('/agendas', json=agenda_payload(status='approved'))
    body = _assert_envelope(response, 201, True)
    assert body['data']['agenda']['status'] == 'approved'
    assert body['data']['agenda']['approved_by'] == users['admin']


def test_create_validation_errors(guru_client, users):
    response = guru_client.post('/agendas', json=agenda_payload(judul='', tanggal='besok'))
    body = _assert_envelope(response, 422, False)
    assert set(body['errors']) == {'judul', 'tanggal'}


def test_siswa_cannot_create_agenda(siswa_client, users):
    _assert_envelope(siswa_client.post('/agendas', json=agenda_payload()), 403, False)
    assert Agenda.query.count() == 0


def test_admin_approve_flow(admin_client, services, users):
    agenda_id = _agenda_for(services, users['guru'])

    body = _assert_envelope(admin_client.put(f'/agendas/{agenda_id}/approve'), 200, True)
    assert body['data']['status'] == 'approved'
    assert body['data']['approver_name'] == 'Administrator'

    _assert_envelope(admin_client.put(f'/agendas/{agenda_id}/approve'), 409, False)
    _assert_envelope(admin_client.put(f'/agendas/{agenda_id}/reject'), 409, False)
    _assert_envelope(admin_client.put('/agendas/999/approve'), 404, False)


def test_reject_without_reason_uses_default(admin_client, services, users):
    agenda_id = _agenda_for(services, users['guru'])

    body = _assert_envelope(admin_client.put(f'/agendas/{agenda_id}/reject', json={}), 200, True)
    assert body['data']['status'] == 'rejected'
    assert body['data']['rejection_reason'] == 'Ditolak oleh admin'


def test_guru_cannot_approve(guru_client, services, users):
    agenda_id = _agenda_for(services, users['guru'])
    _assert_envelope(guru_client.put(f'/agendas/{agenda_id}/approve'), 403, False)
    assert db.session.get(Agenda, agenda_id).status == AgendaStatus.PENDING


def test_guru_edits_only_own_agenda(guru_client, services, users):
    own_id = _agenda_for(services, users['guru'])
    other_id = _agenda_for(services, users['guru2'])
    services.agendas.approve(own_id, users['admin'])

    body = _assert_envelope(guru_client.put(f'/agendas/{own_id}', json=agenda_payload(tempat='Lab')), 200, True)
    assert body['data']['status'] == 'pending'
    assert body['data']['tempat'] == 'Lab'

    _assert_envelope(guru_client.put(f'/agendas/{other_id}', json=agenda_payload(tempat='Lab')), 403, False)


def test_guru_listing_is_own_plus_approved(guru_client, services, users):
    own_id = _agenda_for(services, users['guru'], judul='Milik Budi')
    hidden_id = _agenda_for(services, users['guru2'], judul='Milik Ani')
    shared_id = _agenda_for(services, users['guru2'], judul='Ani Disetujui')
    services.agendas.approve(shared_id, users['admin'])

    body = _assert_envelope(guru_client.get('/agendas'), 200, True)
    assert {agenda['id'] for agenda in body['data']} == {own_id, shared_id}

    _assert_envelope(guru_client.get(f'/agendas/{hidden_id}'), 403, False)
    _assert_envelope(guru_client.get(f"/agendas/user/{users['guru2']}"), 403, False)
    _assert_envelope(guru_client.get(f"/agendas/user/{users['guru']}"), 200, True)


def test_siswa_sees_only_approved(siswa_client, services, users):
    _agenda_for(services, users['guru'])
    approved_id = _agenda_for(services, users['guru'], judul='Upacara')
    services.agendas.approve(approved_id, users['admin'])

    body = _assert_envelope(siswa_client.get('/agendas'), 200, True)
    assert [agenda['id'] for agenda in body['data']] == [approved_id]
    _assert_envelope(siswa_client.get('/agendas/pending'), 403, False)


def test_admin_search_and_delete(admin_client, services, users):
    agenda_id = _agenda_for(services, users['guru'], judul='Rapat Komite')
    _agenda_for(services, users['guru'], judul='Upacara', deskripsi='Upacara bendera')

    body = _assert_envelope(admin_client.get('/agendas?q=komite'), 200, True)
    assert [agenda['id'] for agenda in body['data']] == [agenda_id]

    _assert_envelope(admin_client.delete(f'/agendas/{agenda_id}'), 200, True)
    _assert_envelope(admin_client.delete(f'/agendas/{agenda_id}'), 404, False)

    history = _assert_envelope(admin_client.get('/activities?action=delete'), 200, True)
    assert history['data'][0]['agenda_id'] is None
    assert f'#{agenda_id}' in history['data'][0]['display']


# =========================================================
# USERS, STATS, ACTIVITIES
# =========================================================

def test_admin_creates_user_with_domain_role(admin_client, users):
    response = admin_client.post('/users', json={
        'email': 'rina@smkn1kotabekasi.guru.sch.id',
        'nama': 'Rina',
        'password': PASSWORD,
    })
    body = _assert_envelope(response, 201, True)
    assert body['data']['user']['role'] == 'guru'
    assert body['data']['user']['status'] == 'active'


def test_create_user_duplicate_email_conflicts(admin_client, users):
    response = admin_client.post('/users', json={'email': GURU_EMAIL, 'nama': 'Budi', 'password': PASSWORD})
    _assert_envelope(response, 409, False)


def test_delete_last_admin_conflicts(admin_client, users):
    body = _assert_envelope(admin_client.delete(f"/users/{users['admin']}"), 409, False)
    assert body['message'] == 'Tidak dapat menghapus admin terakhir'


def test_guru_cannot_manage_users(guru_client, users):
    _assert_envelope(guru_client.get('/users'), 403, False)
    _assert_envelope(guru_client.delete(f"/users/{users['siswa']}"), 403, False)


def test_import_users_from_csv(admin_client, users):
    csv_data = (
        'Email,Nama,Password\n'
        'andi@smkn1kotabekasi.sch.id,Andi,rahasia123\n'
        'bela@gmail.com,Bela,rahasia123\n'
    )
    response = admin_client.post(
        '/users/import',
        data={'file': (io.BytesIO(csv_data.encode('utf-8')), 'siswa.csv')},
        content_type='multipart/form-data',
    )
    body = _assert_envelope(response, 200, True)
    assert body['data']['created'] == 1
    assert body['data']['failed'] == 1
    assert body['data']['results'][1]['row'] == 3


def test_stats_for_admin_only(admin_client, services, users):
    _agenda_for(services, users['guru'])

    body = _assert_envelope(admin_client.get('/stats'), 200, True)
    assert body['data']['agendas']['pending_count'] == 1
    assert body['data']['users']['admin_count'] == 1
    assert 'activities' in body['data']


def test_activities_are_paginated(admin_client, services, users):
    for index in range(12):
        services.activity_logger.record(users['guru'], 'create', None, f'Membuat agenda: Kegiatan {index}')

    body = _assert_envelope(admin_client.get('/activities?per_page=5&page=2'), 200, True)

    pagination = body['pagination']
    # 12 entri + 1 login admin
    assert pagination['total'] == 13
    assert pagination['per_page'] == 5
    assert pagination['current_page'] == 2
    assert pagination['total_pages'] == 3
    assert pagination['has_next'] is True
    assert pagination['has_prev'] is True
    assert len(body['data']) == 5


def test_guru_cannot_read_activities(guru_client, users):
    _assert_envelope(guru_client.get('/activities'), 403, False)
    _assert_envelope(guru_client.get('/stats'), 403, False)


def test_admin_login_is_recorded(client, users):
    login(client, ADMIN_EMAIL)
    entry = ActivityLog.query.filter_by(action='login').one()
    assert entry.user_id == users['admin']
    assert entry.ip_address == '127.0.0.1'


# =========================================================
# INPUT TIDAK VALID
# =========================================================

def test_agenda_with_object_title_is_rejected(guru_client, services, users):
    response = guru_client.post('/agendas', json=agenda_payload(judul={'x': 1}))
    body = _assert_envelope(response, 422, False)
    assert 'judul' in body['errors']

    agenda_id = _agenda_for(services, users['guru'])
    response = guru_client.put(f'/agendas/{agenda_id}', json=agenda_payload(judul={'x': 1}))
    _assert_envelope(response, 422, False)


def test_json_array_body_is_a_validation_error(guru_client, users):
    _assert_envelope(guru_client.post('/agendas', json=[1, 2]), 422, False)
    assert Agenda.query.count() == 0


def test_non_text_rejection_reason(admin_client, services, users):
    agenda_id = _agenda_for(services, users['guru'])
    response = admin_client.put(f'/agendas/{agenda_id}/reject', json={'rejection_reason': ['x']})
    body = _assert_envelope(response, 422, False)
    assert 'rejection_reason' in body['errors']


def test_login_with_array_body(client, users):
    _assert_envelope(client.post('/login', json=['budi', 'rahasia']), 422, False)


def test_update_user_with_numeric_name(admin_client, users):
    body = _assert_envelope(admin_client.put(f"/users/{users['siswa']}", json={'nama': 5}), 200, True)
    assert body['data']['nama'] == '5'


def test_reset_password_with_numeric_value(admin_client, users):
    response = admin_client.put(f"/users/{users['siswa']}/reset-password", json={'password': 12345678})
    _assert_envelope(response, 422, False)


def _upload(client, content, filename):
    return client.post(
        '/users/import',
        data={'file': (io.BytesIO(content), filename)},
        content_type='multipart/form-data',
    )


def test_import_rejects_non_utf8_csv(admin_client, users):
    response = _upload(admin_client, b'email,nama,password\n\xff\xfe@x,y,z\n', 'siswa.csv')
    body = _assert_envelope(response, 422, False)
    assert 'file' in body['errors']


def test_import_rejects_corrupt_xlsx(admin_client, users):
    response = _upload(admin_client, b'bukan file excel', 'siswa.xlsx')
    body = _assert_envelope(response, 422, False)
    assert 'file' in body['errors']


def test_import_users_from_xlsx(admin_client, users):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(['Email', 'Nama', 'Password'])
    sheet.append(['dodi@smkn1kotabekasi.sch.id', 'Dodi', 'rahasia123'])
    sheet.append([None, None, None])
    sheet.append(['eka@smkn1kotabekasi.guru.sch.id', 'Eka', 12345678])
    content = io.BytesIO()
    workbook.save(content)

    body = _assert_envelope(_upload(admin_client, content.getvalue(), 'impor.xlsx'), 200, True)

    assert body['data']['created'] == 2
    assert [item['row'] for item in body['data']['results']] == [2, 4]

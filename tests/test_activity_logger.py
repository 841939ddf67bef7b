from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models import ActivityLog
from app.services.activity_logger import format_description


def _add_logs(count, action='create', ip_address='10.0.0.1', user_id=None, created_at=None):
    created_at = created_at or datetime.utcnow()
    db.session.add_all([
        ActivityLog(user_id=user_id, action=action, ip_address=ip_address, created_at=created_at)
        for _ in range(count)
    ])
    db.session.commit()


def test_record_stores_entry(services, users):
    assert services.activity_logger.record(users['admin'], 'login', None, 'Login berhasil', '127.0.0.1') is True

    entry = ActivityLog.query.one()
    assert entry.user_id == users['admin']
    assert entry.action == 'login'
    assert entry.ip_address == '127.0.0.1'


def test_record_reads_client_ip_from_request(app, services, users):
    headers = {'X-Forwarded-For': '36.68.10.5, 10.0.0.1', 'User-Agent': 'pytest-agent'}
    with app.test_request_context('/', headers=headers):
        services.activity_logger.record(users['guru'], 'create')

    entry = ActivityLog.query.one()
    assert entry.ip_address == '36.68.10.5'
    assert entry.user_agent == 'pytest-agent'


def test_record_never_raises_on_database_failure(services, users, monkeypatch):
    def broken_commit():
        raise OperationalError('INSERT', {}, Exception('database is locked'))

    monkeypatch.setattr(db.session, 'commit', broken_commit)

    assert services.activity_logger.record(users['admin'], 'login') is False

    monkeypatch.undo()
    assert ActivityLog.query.count() == 0


def test_log_system_event_appends_context(services):
    services.activity_logger.log_system_event('maintenance', 'Pembersihan', {'removed': 3})

    entry = ActivityLog.query.one()
    assert entry.action == 'system_maintenance'
    assert entry.user_id is None
    assert entry.description == 'Pembersihan | Context: {"removed": 3}'


def test_suspicious_activity_thresholds(services):
    _add_logs(11, action='login_failed', ip_address='198.51.100.1')
    _add_logs(10, action='login_failed', ip_address='198.51.100.2')
    _add_logs(101, action='create', ip_address='198.51.100.3')
    _add_logs(100, action='create', ip_address='198.51.100.4')

    flagged = {row['ip_address']: row for row in services.activity_logger.suspicious_activity()}

    assert set(flagged) == {'198.51.100.1', '198.51.100.3'}
    assert flagged['198.51.100.1']['failed_logins'] == 11
    assert flagged['198.51.100.3']['activity_count'] == 101


def test_suspicious_activity_ignores_events_outside_window(services):
    _add_logs(
        20, action='login_failed', ip_address='198.51.100.9',
        created_at=datetime.utcnow() - timedelta(days=8),
    )
    assert services.activity_logger.suspicious_activity() == []


def test_clean_old_logs_removes_only_expired(services):
    _add_logs(3, created_at=datetime.utcnow() - timedelta(days=400))
    _add_logs(2)

    assert services.activity_logger.clean_old_logs(365) == 3
    assert ActivityLog.query.count() == 2


def test_recent_returns_page_and_total(services, users):
    _add_logs(5, action='login', user_id=users['admin'])
    _add_logs(3, action='create', user_id=users['guru'])

    items, total = services.activity_logger.recent(limit=2, offset=0)
    assert total == 8
    assert len(items) == 2

    items, total = services.activity_logger.recent(limit=10, filters={'user_id': str(users['guru'])})
    assert total == 3
    assert all(entry.action == 'create' for entry in items)


def test_search_filters_by_description(services, users):
    services.activity_logger.record(users['guru'], 'create', None, 'Membuat agenda: Rapat Komite')
    services.activity_logger.record(users['guru'], 'create', None, 'Membuat agenda: Upacara')

    items, total = services.activity_logger.search('komite')
    assert total == 1
    assert items[0].description.endswith('Rapat Komite')


def test_stats_and_summaries(services, users):
    _add_logs(2, action='login', user_id=users['admin'])
    _add_logs(1, action='approve', user_id=users['admin'])
    _add_logs(1, action='create', user_id=users['guru'])

    stats = services.activity_logger.stats_by_date_range()
    assert stats['total_activities'] == 4
    assert stats['login_count'] == 2
    assert stats['approve_count'] == 1
    assert stats['unique_users'] == 2

    top = services.activity_logger.most_active_users(limit=1)
    assert top[0]['id'] == users['admin']
    assert top[0]['activity_count'] == 3

    summary = {row['action']: row['count'] for row in services.activity_logger.user_summary(users['admin'])}
    assert summary == {'login': 2, 'approve': 1}

    daily = services.activity_logger.daily_counts(7)
    assert sum(row['activity_count'] for row in daily) == 4
    assert services.activity_logger.action_count('login') == 2


def test_login_attempts_by_email(services, users):
    services.activity_logger.record(None, 'login_failed', None, 'Login gagal untuk x@smkn1kotabekasi.sch.id')
    services.activity_logger.record(None, 'login_failed', None, 'Login gagal untuk y@smkn1kotabekasi.sch.id')

    assert services.activity_logger.login_attempts(email='x@smkn1kotabekasi.sch.id') == 1


def test_format_description():
    assert format_description({'action': 'login'}) == 'Login berhasil'
    assert format_description({'action': 'approve', 'agenda_title': 'Rapat'}) == 'Menyetujui agenda: Rapat'
    assert format_description({'action': 'delete', 'description': 'Menghapus agenda #3: Rapat'}) == \
        'Menghapus agenda #3: Rapat'
    assert format_description({'action': 'system_auto_reject', 'description': '2 agenda'}) == '2 agenda'


def test_record_coerces_non_text_metadata(services, users):
    assert services.activity_logger.record(users['admin'], 'login', None, 'Login', 12345, 67890) is True

    entry = ActivityLog.query.one()
    assert entry.ip_address == '12345'
    assert entry.user_agent == '67890'

from haulbook.services.numbering import next_trip_number, daily_prefix, next_sequence, format_sequence
from haulbook.services.maintenance import maintenance_status, maintenance_warning
from haulbook.utils.pagination import normalize_page
from haulbook.config import Config


def test_next_trip_number():
    assert next_trip_number([]) == 'TRIP-001'
    assert next_trip_number(['TRIP-001', 'TRIP-009', None, 'MANUAL']) == 'TRIP-010'
    assert next_trip_number(['TRIP-999']) == 'TRIP-1000'


def test_daily_sequence():
    prefix = daily_prefix('INV', '20240131')
    assert prefix == 'INV-20240131-'
    seq = next_sequence(prefix, ['INV-20240131-007', 'INV-20240131-002', 'INV-20240130-099'])
    assert seq == 8
    assert format_sequence(prefix, seq) == 'INV-20240131-008'
    assert next_sequence('RCP-20240131-', []) == 1


def test_maintenance_status_thresholds():
    assert maintenance_status(100, 0, 1000) == {
        'next_maintenance_km': 1000.0, 'kms_remaining': 900.0, 'status': 'ok'
    }
    assert maintenance_status(1000, 500, 1000)['status'] == 'due_soon'
    assert maintenance_status(1500, 500, 1000)['status'] == 'overdue'
    assert maintenance_status(1700, 500, None)['kms_remaining'] == -200.0


def test_maintenance_warning_text():
    assert maintenance_warning(maintenance_status(100, 0, 1000)) is None
    assert maintenance_warning(maintenance_status(1200, 500, 1000)).startswith('Maintenance due soon!')
    assert maintenance_warning(maintenance_status(1600, 500, 1000)).startswith('Maintenance overdue!')


def test_page_size_defaults_come_from_config():
    assert normalize_page(None, None) == (1, Config.DEFAULT_PAGE_SIZE)
    assert normalize_page('0', '100000') == (1, Config.MAX_PAGE_SIZE)
    assert normalize_page('3', 'abc') == (3, Config.DEFAULT_PAGE_SIZE)

import uuid
from datetime import date, timedelta


def _name(prefix):
    return f"{prefix} {uuid.uuid4().hex[:6]}"


def _category_id(client, headers, name, kind="Expense"):
    cats = client.get('/api/categories', params={'type': kind}, headers=headers).json()
    return next(c['id'] for c in cats if c['name'] == name)


def test_fund_crud_with_optimistic_concurrency(client, auth_headers):
    r = client.post('/api/funds', json={'name': _name('Capital'), 'type': 'Restricted',
                                        'starting_balance': '1000'}, headers=auth_headers)
    assert r.status_code == 201
    fund = r.json()
    assert fund['balance'] == 1000.0
    assert fund['row_version'] == 1

    r = client.put(f"/api/funds/{fund['id']}", json={'description': 'roof', 'row_version': 1},
                   headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['row_version'] == 2

    r = client.put(f"/api/funds/{fund['id']}", json={'description': 'stale', 'row_version': 1},
                   headers=auth_headers)
    assert r.status_code == 409

    history = client.get(f"/api/audit/Fund/{fund['id']}", headers=auth_headers).json()
    assert {h['action'] for h in history} == {'Create', 'Update'}

    assert client.delete(f"/api/funds/{fund['id']}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/funds/{fund['id']}", headers=auth_headers).status_code == 404


def test_seeded_category_tree(client, auth_headers):
    tree = client.get('/api/categories/tree', params={'type': 'Income'}, headers=auth_headers).json()
    contributions = next(node for node in tree if node['name'] == 'Contributions')
    assert 'Individual Donations' in [c['name'] for c in contributions['children']]


def test_category_archive_and_restore(client, auth_headers):
    r = client.post('/api/categories', json={'name': _name('Temp'), 'type': 'Expense'}, headers=auth_headers)
    cat_id = r.json()['id']
    assert client.post(f'/api/categories/{cat_id}/archive', headers=auth_headers).json()['is_archived'] is True
    listed = client.get('/api/categories', params={'type': 'Expense'}, headers=auth_headers).json()
    assert cat_id not in [c['id'] for c in listed]
    assert client.post(f'/api/categories/{cat_id}/restore', headers=auth_headers).json()['is_archived'] is False


def test_transaction_lifecycle(client, auth_headers):
    donor = client.post('/api/donors', json={'name': _name('Donor')}, headers=auth_headers).json()
    payload = {
        'transaction_date': '2024-04-01',
        'amount': '125.50',
        'type': 'Income',
        'category_id': _category_id(client, auth_headers, 'Individual Donations', 'Income'),
        'donor_id': donor['id'],
        'payee': 'Spring appeal',
    }
    r = client.post('/api/transactions', json=payload, headers=auth_headers)
    assert r.status_code == 201
    txn = r.json()
    assert txn['amount'] == 125.5

    page = client.get('/api/transactions', params={'donor_id': donor['id']}, headers=auth_headers).json()
    assert page['total_count'] == 1
    assert page['items'][0]['id'] == txn['id']

    contributions = client.get(f"/api/donors/{donor['id']}/contributions", headers=auth_headers).json()
    assert [c['id'] for c in contributions] == [txn['id']]

    assert client.delete(f"/api/transactions/{txn['id']}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/transactions/{txn['id']}", headers=auth_headers).status_code == 404
    deleted = client.get('/api/transactions/deleted', headers=auth_headers).json()
    assert txn['id'] in [d['id'] for d in deleted]
    page = client.get('/api/transactions', params={'donor_id': donor['id']}, headers=auth_headers).json()
    assert page['total_count'] == 0
    assert page['items'] == []

    r = client.post(f"/api/transactions/{txn['id']}/restore", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['is_deleted'] is False


def test_transaction_validation_errors(client, auth_headers):
    r = client.post('/api/transactions', json={'transaction_date': '2024-04-01', 'amount': '10',
                                               'type': 'Income'}, headers=auth_headers)
    assert r.status_code == 400
    r = client.post('/api/transactions', json={'transaction_date': '2024-04-01', 'amount': '0',
                                               'type': 'Income', 'category_id': 1}, headers=auth_headers)
    assert r.status_code == 422


def test_grant_endpoints(client, auth_headers):
    soon = (date.today() + timedelta(days=10)).isoformat()
    r = client.post('/api/grants', json={'name': _name('Grant'), 'grantor_name': 'County', 'amount': '5000',
                                         'start_date': '2024-01-01', 'end_date': soon, 'status': 'Active'},
                    headers=auth_headers)
    assert r.status_code == 201
    grant = r.json()
    assert grant['remaining_balance'] == 5000.0
    expiring = client.get('/api/grants/expiring', params={'days': 30}, headers=auth_headers).json()
    assert grant['id'] in [g['id'] for g in expiring]


def test_recurring_template_endpoints(client, auth_headers):
    r = client.post('/api/recurring', json={
        'name': _name('Internet'), 'amount': '60', 'type': 'Expense',
        'category_id': _category_id(client, auth_headers, 'Utilities'),
        'start_date': (date.today() + timedelta(days=2)).isoformat(),
    }, headers=auth_headers)
    assert r.status_code == 201
    template = r.json()
    upcoming = client.get('/api/recurring/upcoming', headers=auth_headers).json()
    assert template['id'] in [u['id'] for u in upcoming]

    result = client.post('/api/recurring/process', headers=auth_headers).json()
    assert set(result) >= {'processed', 'succeeded', 'failed', 'errors'}

    status = client.get('/api/recurring/scheduler', headers=auth_headers).json()
    assert status['enabled'] is False
    assert status['seconds_until_next_run'] > 0


def test_inventory_endpoints(client, auth_headers):
    location = client.post('/api/inventory/locations', json={'name': _name('Closet')}, headers=auth_headers).json()
    r = client.post('/api/inventory/items', json={
        'name': _name('Paper towels'), 'quantity': '12', 'minimum_quantity': '4', 'unit_cost': '1.5',
        'location_id': location['id'],
    }, headers=auth_headers)
    assert r.status_code == 201
    item = r.json()
    assert item['status'] == 'InStock'

    r = client.post(f"/api/inventory/items/{item['id']}/adjust", json={'change': '-10'}, headers=auth_headers)
    assert r.json()['status'] == 'LowStock'
    r = client.post(f"/api/inventory/items/{item['id']}/adjust", json={'change': '-5'}, headers=auth_headers)
    assert r.status_code == 400

    low = client.get('/api/inventory/items/low-stock', headers=auth_headers).json()
    assert item['id'] in [i['id'] for i in low]
    movements = client.get(f"/api/inventory/items/{item['id']}/transactions", headers=auth_headers).json()
    assert [m['type'] for m in movements] == ['Use']
    at_location = client.get(f"/api/inventory/locations/{location['id']}/items", headers=auth_headers).json()
    assert [i['id'] for i in at_location] == [item['id']]
    assert client.delete(f"/api/inventory/locations/{location['id']}", headers=auth_headers).status_code == 400


def test_maintenance_flow(client, auth_headers):
    building = client.post('/api/maintenance/buildings', json={'name': _name('Chapel')},
                           headers=auth_headers).json()
    sr = client.post('/api/maintenance/service-requests', json={
        'title': 'Broken window', 'building_id': building['id'],
    }, headers=auth_headers).json()
    assert sr['status'] == 'Submitted'

    r = client.post(f"/api/maintenance/service-requests/{sr['id']}/review", json={'approve': True},
                    headers=auth_headers)
    assert r.json()['status'] == 'Approved'
    r = client.post(f"/api/maintenance/service-requests/{sr['id']}/convert", json={'assigned_to': 'Sam'},
                    headers=auth_headers)
    assert r.status_code == 201
    wo = r.json()
    assert wo['work_order_number'].startswith('WO-')

    r = client.post(f"/api/maintenance/work-orders/{wo['id']}/status", json={'status': 'Verified'},
                    headers=auth_headers)
    assert r.status_code == 400
    r = client.post(f"/api/maintenance/work-orders/{wo['id']}/status", json={'status': 'InProgress'},
                    headers=auth_headers)
    assert r.json()['started_at'] is not None

    page = client.get('/api/maintenance/work-orders', params={'building_id': building['id']},
                      headers=auth_headers).json()
    assert [w['id'] for w in page['items']] == [wo['id']]


def test_reports_return_json_numbers(client, auth_headers):
    dashboard = client.get('/api/reports/dashboard', headers=auth_headers).json()
    assert isinstance(dashboard['ytd_income'], (int, float))
    assert dashboard['funds']['fund_count'] >= 4
    status = client.get('/api/reports/audit-threshold', headers=auth_headers).json()
    assert set(status) == {'ytd_revenue', 'threshold', 'percentage', 'approaching', 'exceeded'}


def test_csv_import_and_export(client, auth_headers):
    payee = _name('Hardware')
    body = f"Date,Amount,Description,Payee\n2024-05-01,-19.99,Screws,{payee}\n".encode()
    mapping = '{"date_column": 0, "amount_column": 1, "description_column": 2, "payee_column": 3}'
    r = client.post('/api/import/transactions', files={'file': ('bank.csv', body, 'text/csv')},
                    data={'mapping': mapping}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['imported_rows'] == 1

    r = client.get('/api/export/transactions', params={'search_term': payee}, headers=auth_headers)
    assert r.status_code == 200
    assert r.headers['content-type'].startswith('text/csv')
    assert 'attachment; filename="transactions_' in r.headers['content-disposition']
    assert payee in r.text

    audit = client.get('/api/audit', params={'action': 'Export', 'entity_type': 'Transaction'},
                       headers=auth_headers)
    assert audit.status_code == 200
    assert audit.json()[0]['description'] == 'Exported 1 rows'

    r = client.post('/api/import/transactions', files={'file': ('bank.csv', body, 'text/csv')},
                    data={'mapping': '{"date_column": -1}'}, headers=auth_headers)
    assert r.status_code == 400

    template = client.get('/api/import/templates/donors', headers=auth_headers)
    assert template.text.startswith('Name,Type,Email')


def test_categorization_rules_and_suggestions(client, auth_headers):
    pattern = _name('Gas Co')
    utilities = _category_id(client, auth_headers, 'Utilities')
    r = client.post('/api/categorization/rules', json={'name': 'gas bills', 'match_pattern': pattern,
                                                        'category_id': utilities, 'priority': 999},
                    headers=auth_headers)
    assert r.status_code == 201
    rule = r.json()

    r = client.get('/api/categorization/suggest', params={'payee': f"{pattern} invoice"}, headers=auth_headers)
    assert r.json() == {'category_id': utilities, 'rule_id': rule['id'], 'source': 'rule'}

    r = client.post('/api/categorization/rules', json={'name': 'bad', 'match_type': 'AmountEquals',
                                                        'match_pattern': 'ten', 'category_id': utilities},
                    headers=auth_headers)
    assert r.status_code == 400

    r = client.put(f"/api/categorization/rules/{rule['id']}", json={'is_active': False}, headers=auth_headers)
    assert r.json()['is_active'] is False
    assert client.delete(f"/api/categorization/rules/{rule['id']}", headers=auth_headers).status_code == 204
    assert client.get(f"/api/categorization/rules/{rule['id']}", headers=auth_headers).status_code == 404

    r = client.post('/api/categorization/rules/learn', params={'minimum_occurrences': 50}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {'created': 0}

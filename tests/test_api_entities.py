"""
API tests: entity CRUD, search and relationship endpoints.
"""

import pytest

from services.entity_config import get_entity_config


def seed(store, entity_type, *rows):
    config = get_entity_config(entity_type)
    collection = store.collection(config.collection_name)
    for row in rows:
        collection.insert(config.transform(row))


class TestApplianceCrud:

    def test_create_and_get(self, client):
        response = client.post('/api/appliances', json={
            'appliance_id': 'APP001',
            'model_name': 'Hot Stove 89',
            'appliance_type': 'Stove',
            'nominal_output': 12,
        })

        assert response.status_code == 201
        created = response.json()
        assert created['appliance_type'] == 'Stove'
        assert created['manufacturer'] == 'Unknown'
        assert created['published_date'] is not None

        fetched = client.get('/api/appliances/APP001').json()
        assert fetched['model_name'] == 'Hot Stove 89'
        assert fetched['nominal_output'] == 12.0

    def test_duplicate_id(self, client):
        client.post('/api/appliances', json={'appliance_id': 'APP001'})

        response = client.post('/api/appliances', json={'appliance_id': 'APP001'})

        assert response.status_code == 409

    @pytest.mark.parametrize('payload', [
        {'appliance_id': 'APP001', 'appliance_type': 'Microwave'},
        {'appliance_id': 'APP001', 'nominal_output': -1},
        {'model_name': 'No id'},
    ])
    def test_invalid_payload(self, client, payload):
        assert client.post('/api/appliances', json=payload).status_code == 422

    def test_not_found(self, client):
        assert client.get('/api/appliances/APP404').status_code == 404
        assert client.patch('/api/appliances/APP404', json={'model_name': 'x'}).status_code == 404
        assert client.delete('/api/appliances/APP404').status_code == 404

    def test_patch_keeps_created_at(self, client):
        created = client.post('/api/appliances', json={'appliance_id': 'APP001'}).json()

        response = client.patch('/api/appliances/APP001', json={'model_name': 'Renamed'})

        assert response.status_code == 200
        updated = response.json()
        assert updated['model_name'] == 'Renamed'
        assert updated['manufacturer'] == 'Unknown'
        assert updated['created_at'] == created['created_at']

    def test_delete(self, client):
        client.post('/api/appliances', json={'appliance_id': 'APP001'})

        assert client.delete('/api/appliances/APP001').status_code == 204
        assert client.get('/api/appliances/APP001').status_code == 404

    def test_list_paginates(self, client, store):
        seed(store, 'appliances', *({'applianceId': f'APP{i:03d}'} for i in range(1, 6)))

        body = client.get('/api/appliances', params={'page': 2, 'page_size': 2}).json()

        assert body['total'] == 5
        assert body['total_pages'] == 3
        assert [a['appliance_id'] for a in body['items']] == ['APP003', 'APP004']

    def test_search(self, client, store):
        seed(store, 'appliances',
             {'applianceId': 'APP001', 'modelName': 'Hot Stove 89'},
             {'applianceId': 'APP002', 'modelName': 'Warm Boiler'},
             {'applianceId': 'APP003', 'manufacturer': 'Stoves LTD'})

        body = client.get('/api/appliances/search', params={'q': 'stove'}).json()

        assert body['total'] == 2
        assert {a['appliance_id'] for a in body['items']} == {'APP001', 'APP003'}

    def test_search_needs_two_characters(self, client):
        assert client.get('/api/appliances/search', params={'q': 's'}).status_code == 422


class TestFuelAndUserCrud:

    def test_fuel_patch_constraint(self, client):
        client.post('/api/fuels', json={'fuel_id': 'FUEL001'})

        assert client.patch('/api/fuels/FUEL001', json={'sulphur_content': 150}).status_code == 400
        assert client.patch('/api/fuels/FUEL001', json={'fuel_bagging': 'Crate'}).status_code == 422

        response = client.patch('/api/fuels/FUEL001', json={'fuel_bagging': 'Loose'})
        assert response.status_code == 200
        assert response.json()['fuel_bagging'] == 'Loose'

    def test_user_email_unique(self, client):
        assert client.post('/api/users', json={'user_id': 'USER001', 'email': 'a@example.com'}).status_code == 201

        response = client.post('/api/users', json={'user_id': 'USER002', 'email': 'a@example.com'})

        assert response.status_code == 409

    def test_user_defaults(self, client):
        user = client.post('/api/users', json={'user_id': 'USER001'}).json()

        assert user['role'] == 'user'
        assert user['email'] == 'noemail@example.com'
        assert user['registration_date'] is None


class TestRelations:

    @pytest.fixture
    def register(self, store):
        seed(store, 'users',
             {'userId': 'USER001', 'firstName': 'John', 'email': 'john@example.com'},
             {'userId': 'USER002', 'firstName': 'Jane', 'email': 'jane@example.com'})
        seed(store, 'appliances', {'applianceId': 'APP001'}, {'applianceId': 'APP002'})
        seed(store, 'fuels', {'fuelId': 'FUEL001'})
        seed(store, 'userAppliances',
             {'userId': 'USER001', 'applianceId': 'APP001', 'notes': 'Primary'},
             {'userId': 'USER002', 'applianceId': 'APP001', 'status': 'pending'},
             {'userId': 'USER001', 'applianceId': 'APP002'})
        seed(store, 'userFuels', {'userId': 'USER001', 'fuelId': 'FUEL001'})

    def test_user_relations(self, client, register):
        body = client.get('/api/users/USER001/relations').json()

        assert body['user']['first_name'] == 'John'
        assert [a['appliance_id'] for a in body['appliances']] == ['APP001', 'APP002']
        assert body['appliances'][0]['assignment']['notes'] == 'Primary'
        assert body['appliances'][0]['assignment']['status'] == 'active'
        assert [f['fuel_id'] for f in body['fuels']] == ['FUEL001']

    def test_appliance_users(self, client, register):
        body = client.get('/api/appliances/APP001/users').json()

        assert body['appliance']['appliance_id'] == 'APP001'
        statuses = {u['user_id']: u['assignment']['status'] for u in body['users']}
        assert statuses == {'USER001': 'active', 'USER002': 'pending'}

    def test_fuel_users(self, client, register):
        body = client.get('/api/fuels/FUEL001/users').json()
        assert [u['user_id'] for u in body['users']] == ['USER001']

    def test_unknown_parent(self, client, register):
        assert client.get('/api/users/USER404/relations').status_code == 404
        assert client.get('/api/appliances/APP404/users').status_code == 404
        assert client.get('/api/fuels/FUEL404/users').status_code == 404

    def test_user_without_links(self, client, store):
        seed(store, 'users', {'userId': 'USER009'})

        body = client.get('/api/users/USER009/relations').json()

        assert body['appliances'] == []
        assert body['fuels'] == []

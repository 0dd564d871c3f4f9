"""
Tests for row-by-row upsert reconciliation.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from services.entity_config import get_entity_config
from services.errors import StoreUnavailableError
from services.import_reconciler import EntityImportResult, ImportReconciler


def reconcile(store, entity_type, rows, clock=None):
    config = get_entity_config(entity_type)
    collection = store.collection(config.collection_name)
    return ImportReconciler(collection, config, clock=clock).reconcile(rows)


class TestEntityImportResult:

    def test_counts_and_errors(self):
        result = EntityImportResult(entity='fuels', inserted=2, updated=1)
        result.add_error('Missing fuelId', row=3)
        result.add_error('Sheet "Fuels" not found in Excel file')

        assert result.processed == 3
        assert result.to_dict() == {
            'entity': 'fuels',
            'inserted': 2,
            'updated': 1,
            'skipped': 0,
            'errors': [
                {'row': 3, 'error': 'Missing fuelId'},
                {'error': 'Sheet "Fuels" not found in Excel file'},
            ],
        }


class TestInsertAndUpdate:

    def test_new_rows_are_inserted(self, store):
        rows = [
            {'fuelId': 'FUEL001', 'fuelName': 'Eco Briquettes', 'sulphurContent': '2.5'},
            {'fuelId': 'FUEL002', 'fuelName': 'Ovals'},
        ]

        result = reconcile(store, 'fuels', rows)

        assert (result.inserted, result.updated, result.skipped) == (2, 0, 0)
        assert result.errors == []
        stored = store.collection('Fuels').find_one({'fuel_id': 'FUEL001'})
        assert stored['fuel_name'] == 'Eco Briquettes'
        assert stored['sulphur_content'] == 2.5

    def test_reimport_is_idempotent(self, store):
        rows = [{'applianceId': 'APP001', 'modelName': 'Hot Stove 89'}]

        first = reconcile(store, 'appliances', rows)
        second = reconcile(store, 'appliances', rows)

        assert (first.inserted, first.updated) == (1, 0)
        assert (second.inserted, second.updated) == (0, 1)
        assert store.collection('Appliances').count() == 1

    def test_reimport_leaves_stored_document_unchanged(self, store, clock):
        row = {
            'applianceId': 'APP042',
            'manufacturer': 'Stovax',
            'manufacturerContactEmail': 'sales@stovax.example',
            'modelName': 'Riva 40',
            'modelNumber': 'RV-40',
            'applianceType': 'stove',
            'isVariant': 'yes',
            'nominalOutput': '4.9',
            'permittedFuels': 'FUEL001, FUEL002',
            'instructionManualDate': '12/03/2024',
            'publishedDate': '2024-04-01',
            'approvedBy': 'J. Smith',
        }
        collection = store.collection('Appliances')

        reconcile(store, 'appliances', [row], clock=clock)
        first = collection.find_one({'appliance_id': 'APP042'})
        clock.advance(datetime(2025, 3, 1, 12, 0, 0))
        second_result = reconcile(store, 'appliances', [row], clock=clock)
        second = collection.find_one({'appliance_id': 'APP042'})

        assert (second_result.inserted, second_result.updated) == (0, 1)
        assert second['updated_at'] > first['updated_at']
        first.pop('updated_at')
        second.pop('updated_at')
        assert second == first
        assert second['appliance_type'] == 'Stove'
        assert second['permitted_fuels'] == ['FUEL001', 'FUEL002']
        assert second['instruction_manual_date'] == datetime(2024, 3, 12)

    def test_update_keeps_created_at(self, store, clock):
        reconcile(store, 'users', [{'userId': 'USER001', 'firstName': 'John'}], clock=clock)
        clock.advance(datetime(2025, 6, 1, 9, 0, 0))
        reconcile(store, 'users', [{'userId': 'USER001', 'firstName': 'Johnny'}], clock=clock)

        user = store.collection('Users').find_one({'user_id': 'USER001'})
        assert user['first_name'] == 'Johnny'
        assert user['created_at'] == datetime(2025, 1, 1, 9, 0, 0)
        assert user['updated_at'] == datetime(2025, 6, 1, 9, 0, 0)

    def test_update_overwrites_with_defaults(self, store):
        reconcile(store, 'fuels', [{'fuelId': 'FUEL009', 'fuelName': 'Named', 'sulphurContent': '4'}])
        reconcile(store, 'fuels', [{'fuelId': 'FUEL009'}])

        fuel = store.collection('Fuels').find_one({'fuel_id': 'FUEL009'})
        assert fuel['fuel_name'] == 'Unknown Fuel'
        assert fuel['sulphur_content'] == 0.0

    def test_composite_link_upsert(self, store):
        rows = [
            {'userId': 'USER001', 'applianceId': 'APP001', 'notes': 'Primary'},
            {'userId': 'USER001', 'applianceId': 'APP002'},
            {'userId': 'USER002', 'applianceId': 'APP001'},
        ]

        first = reconcile(store, 'userAppliances', rows)
        second = reconcile(store, 'userAppliances', [
            {'userId': 'USER001', 'applianceId': 'APP001', 'status': 'inactive'},
        ])

        assert first.inserted == 3
        assert (second.inserted, second.updated) == (0, 1)
        links = store.collection('UserAppliances')
        assert links.count() == 3
        link = links.find_one({'user_id': 'USER001', 'appliance_id': 'APP001'})
        assert link['status'] == 'inactive'
        assert link['notes'] is None


class TestRowErrors:

    def test_missing_key_row_is_skipped(self, store):
        rows = [
            {'fuelId': 'FUEL001'},
            {'fuelName': 'Orphan Fuel'},
            {'fuelId': 'FUEL002'},
        ]

        result = reconcile(store, 'fuels', rows)

        assert (result.inserted, result.updated, result.skipped) == (2, 0, 1)
        assert result.errors == [{'row': 3, 'error': 'Missing fuelId'}]
        assert store.collection('Fuels').count() == 2

    def test_missing_composite_half(self, store):
        result = reconcile(store, 'userFuels', [
            {'userId': 'USER001', 'fuelId': 'FUEL001'},
            {'userId': 'USER001'},
        ])

        assert result.inserted == 1
        assert result.errors == [{'row': 3, 'error': 'Missing fuelId'}]

    def test_store_constraint_rejects_row(self, store):
        rows = [
            {'fuelId': 'FUEL001', 'fuelBagging': 'Crate'},
            {'fuelId': 'FUEL002', 'fuelBagging': 'Loose'},
        ]

        result = reconcile(store, 'fuels', rows)

        assert (result.inserted, result.skipped) == (1, 1)
        assert result.errors[0]['row'] == 2
        assert 'CHECK constraint failed' in result.errors[0]['error']
        assert store.collection('Fuels').find_one({'fuel_id': 'FUEL002'}) is not None

    def test_sulphur_out_of_range(self, store):
        result = reconcile(store, 'fuels', [{'fuelId': 'FUEL001', 'sulphurContent': '150'}])
        assert result.skipped == 1
        assert result.inserted == 0

    def test_duplicate_email_rejected(self, store):
        rows = [
            {'userId': 'USER001', 'email': 'same@example.com'},
            {'userId': 'USER002', 'email': 'same@example.com'},
        ]

        result = reconcile(store, 'users', rows)

        assert (result.inserted, result.skipped) == (1, 1)
        assert result.errors[0]['row'] == 3
        assert 'UNIQUE constraint failed' in result.errors[0]['error']

    def test_bad_link_status_rejected(self, store):
        result = reconcile(store, 'userFuels', [
            {'userId': 'USER001', 'fuelId': 'FUEL001', 'status': 'archived'},
        ])
        assert result.skipped == 1

    def test_lost_connection_aborts(self, store, monkeypatch):
        collection = store.collection('Fuels')
        config = get_entity_config('fuels')

        def gone(filter):
            raise StoreUnavailableError('Lost connection to document store')

        monkeypatch.setattr(collection, 'find_one', gone)

        with pytest.raises(StoreUnavailableError):
            ImportReconciler(collection, config).reconcile([{'fuelId': 'FUEL001'}])

    def test_operational_error_is_row_error(self, store, monkeypatch):
        collection = store.collection('Fuels')
        config = get_entity_config('fuels')

        def broken(document):
            raise OperationalError('INSERT', {}, Exception('database is locked'))

        monkeypatch.setattr(collection, 'insert', broken)

        result = ImportReconciler(collection, config).reconcile([{'fuelId': 'FUEL001'}])

        assert result.skipped == 1
        assert result.errors == [{'row': 2, 'error': 'database is locked'}]

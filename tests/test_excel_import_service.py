"""
Tests for the batch import orchestrator.
"""

from datetime import datetime

from services.excel_import_service import (
    ExcelImportService, import_batch, normalize_entity_request
)


class TestNormalizeEntityRequest:

    def test_plain_name(self):
        assert normalize_entity_request('fuels') == {'type': 'fuels', 'sheet_name': None}

    def test_sheet_name_aliases(self):
        assert normalize_entity_request({'type': 'fuels', 'sheetName': 'Fuel List'})['sheet_name'] == 'Fuel List'
        assert normalize_entity_request({'type': 'fuels', 'sheet_name': 'Fuel List'})['sheet_name'] == 'Fuel List'
        assert normalize_entity_request({'type': 'fuels', 'sheetName': ''})['sheet_name'] is None


class TestImportBatch:

    def test_partial_failure(self, session, store, make_workbook, fuel_rows):
        path = make_workbook({'Fuels': fuel_rows})

        results = ExcelImportService(session).import_batch(path, ['fuels'])

        assert [r.to_dict() for r in results] == [{
            'entity': 'fuels',
            'inserted': 2,
            'updated': 0,
            'skipped': 1,
            'errors': [{'row': 3, 'error': 'Missing fuelId'}],
        }]
        fuel = store.collection('Fuels').find_one({'fuel_id': 'FUEL001'})
        assert fuel['brand_names'] == ['Brand A', 'Brand B']
        assert fuel['sulphur_content'] == 2.5

    def test_error_rows_count_blank_rows(self, session, make_workbook):
        path = make_workbook({'Fuels': [
            ['fuelId', 'fuelName'],
            ['FUEL001', 'A'],
            [None, None],
            [None, 'Orphan'],
        ]})

        result = ExcelImportService(session).import_batch(path, ['fuels'])[0]

        assert result.inserted == 1
        assert result.errors == [{'row': 4, 'error': 'Missing fuelId'}]

    def test_date_cells_keep_time_of_day(self, session, store, make_workbook):
        path = make_workbook({'Users': [
            ['userId', 'registrationDate'],
            ['USER001', datetime(2025, 1, 15, 14, 30)],
        ]})

        ExcelImportService(session).import_batch(path, ['users'])

        user = store.collection('Users').find_one({'user_id': 'USER001'})
        assert user['registration_date'] == datetime(2025, 1, 15, 14, 30)

    def test_results_follow_request_order(self, session, make_workbook):
        path = make_workbook({
            'Users': [['userId', 'email'], ['USER001', 'john@example.com']],
            'Appliances': [['applianceId'], ['APP001']],
            'UserAppliances': [['userId', 'applianceId'], ['USER001', 'APP001']],
        })

        results = import_batch(session, path, ['userAppliances', 'appliances', 'users'])

        assert [r.entity for r in results] == ['userAppliances', 'appliances', 'users']
        assert all(r.inserted == 1 for r in results)

    def test_unknown_entity_type(self, session, make_workbook):
        path = make_workbook({'Fuels': [['fuelId'], ['FUEL001']]})

        results = ExcelImportService(session).import_batch(path, ['widgets', 'fuels'])

        assert results[0].to_dict() == {
            'entity': 'widgets', 'inserted': 0, 'updated': 0, 'skipped': 0,
            'errors': [{'error': 'Unknown entity type: widgets'}],
        }
        assert results[1].inserted == 1

    def test_missing_sheet(self, session, make_workbook):
        path = make_workbook({'Fuels': [['fuelId'], ['FUEL001']]})

        results = ExcelImportService(session).import_batch(path, ['appliances', 'fuels'])

        assert results[0].errors == [{'error': 'Sheet "Appliances" not found in Excel file'}]
        assert results[0].processed == 0
        assert results[1].inserted == 1

    def test_empty_sheet(self, session, make_workbook):
        path = make_workbook({'Users': [['userId', 'email']]})

        result = ExcelImportService(session).import_batch(path, ['users'])[0]

        assert result.to_dict() == {
            'entity': 'users', 'inserted': 0, 'updated': 0, 'skipped': 0, 'errors': []
        }

    def test_custom_sheet_name(self, session, store, make_workbook):
        path = make_workbook({'Fuel List': [['fuelId'], ['FUEL001']]})

        results = ExcelImportService(session).import_batch(
            path, [{'type': 'fuels', 'sheetName': 'Fuel List'}]
        )

        assert results[0].inserted == 1
        assert store.collection('Fuels').count() == 1

    def test_same_workbook_twice_updates(self, session, make_workbook, fuel_rows):
        path = make_workbook({'Fuels': fuel_rows})
        service = ExcelImportService(session)

        service.import_batch(path, ['fuels'])
        second = service.import_batch(path, ['fuels'])[0]

        assert (second.inserted, second.updated, second.skipped) == (0, 2, 1)

    def test_progress_callback(self, session, make_workbook):
        path = make_workbook({
            'Appliances': [['applianceId'], ['APP001']],
            'Fuels': [['fuelId'], ['FUEL001']],
        })
        updates = []

        ExcelImportService(
            session, progress_callback=lambda stage, percent, message: updates.append((stage, percent))
        ).import_batch(path, ['appliances', 'fuels'])

        assert updates == [
            ('reading', 5),
            ('importing', 10.0),
            ('importing', 52.5),
            ('complete', 100),
        ]

    def test_clock_stamps_rows(self, session, store, make_workbook, clock):
        path = make_workbook({'UserFuels': [['userId', 'fuelId'], ['USER001', 'FUEL001']]})

        ExcelImportService(session, clock=clock).import_batch(path, ['userFuels'])

        link = store.collection('UserFuels').find_one({'user_id': 'USER001', 'fuel_id': 'FUEL001'})
        assert link['assigned_date'] == clock.now
        assert link['created_at'] == clock.now

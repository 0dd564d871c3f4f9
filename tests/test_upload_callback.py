"""
API tests: upload-service initiation and scan callbacks.
"""

import io
import os
from unittest.mock import MagicMock

import pytest

from api.dependencies import get_storage_service, get_uploader_client
from api.main import app
from services.storage_service import StorageService
from services.uploader_client import UploaderClient


def callback_body(**overrides):
    body = {
        'uploadStatus': 'ready',
        'metadata': {'entities': ['fuels']},
        'form': {
            'file': {
                'fileStatus': 'complete',
                'filename': 'register.xlsx',
                's3Bucket': 'register-imports',
                's3Key': 'imports/u-1/register.xlsx',
                'hasError': False,
            }
        },
        'numberOfRejectedFiles': 0,
    }
    body.update(overrides)
    return body


@pytest.fixture
def s3_storage(client, upload_dir, make_workbook, fuel_rows):
    """Storage whose S3 client serves a fuels workbook."""
    path = make_workbook({'Fuels': fuel_rows}, filename='s3-source.xlsx')
    with open(path, 'rb') as f:
        content = f.read()

    s3_client = MagicMock()
    s3_client.get_object.side_effect = lambda Bucket, Key: {'Body': io.BytesIO(content)}
    storage = StorageService(temp_dir=str(upload_dir), s3_client=s3_client)
    app.dependency_overrides[get_storage_service] = lambda: storage
    return storage


class TestUploadCallback:

    def test_imports_downloaded_workbook(self, client, s3_storage, store, upload_dir):
        response = client.post('/upload-callback', json=callback_body())

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['results'] == [{
            'entity': 'fuels', 'inserted': 2, 'updated': 0, 'skipped': 1,
            'errors': [{'row': 3, 'error': 'Missing fuelId'}],
        }]
        s3_storage.s3_client.get_object.assert_called_once_with(
            Bucket='register-imports', Key='imports/u-1/register.xlsx'
        )
        assert store.collection('Fuels').count() == 2
        assert os.listdir(upload_dir) == []

    def test_not_ready(self, client, s3_storage):
        body = client.post('/upload-callback', json=callback_body(uploadStatus='pending')).json()

        assert body == {'success': False, 'message': 'Upload not ready'}
        s3_storage.s3_client.get_object.assert_not_called()

    def test_rejected_files(self, client, s3_storage):
        response = client.post('/upload-callback', json=callback_body(numberOfRejectedFiles=1))

        assert response.status_code == 200
        assert response.json()['success'] is False

    def test_incomplete_file(self, client, s3_storage):
        body = callback_body()
        body['form']['file']['fileStatus'] = 'pending'

        assert client.post('/upload-callback', json=body).json() == {
            'success': False, 'message': 'File not available or incomplete'
        }

    def test_file_with_error(self, client, s3_storage):
        body = callback_body()
        body['form']['file']['hasError'] = True
        body['form']['file']['errorMessage'] = 'The selected file contains a virus'

        assert client.post('/upload-callback', json=body).json()['message'] == \
            'The selected file contains a virus'

    def test_no_entities(self, client, s3_storage):
        body = client.post('/upload-callback', json=callback_body(metadata={})).json()

        assert body == {'success': False, 'message': 'No entities specified for import'}

    def test_malformed_payload(self, client, s3_storage):
        response = client.post('/upload-callback', json={'uploadStatus': 'ready'})

        assert response.status_code == 400
        assert response.json()['success'] is False

    def test_download_failure(self, client, s3_storage):
        s3_storage.s3_client.get_object.side_effect = RuntimeError('NoSuchKey')

        response = client.post('/upload-callback', json=callback_body())

        assert response.status_code == 500
        assert response.json() == {'success': False, 'message': 'NoSuchKey'}


class FakeResponse:

    def __init__(self, status_code, payload=None, text=''):
        self.status_code = status_code
        self.ok = status_code < 400
        self.payload = payload
        self.text = text

    def json(self):
        return self.payload


@pytest.fixture
def uploader_http(client):
    http = MagicMock()
    http.post.return_value = FakeResponse(200, {
        'uploadId': 'u-1',
        'uploadUrl': '/upload-and-scan/u-1',
        'statusUrl': 'http://uploader/status/u-1',
    })
    http.get.return_value = FakeResponse(200, {'uploadStatus': 'ready'})
    uploader = UploaderClient(
        base_url='http://uploader',
        callback_url='http://localhost:8000/upload-callback',
        s3_bucket='register-imports',
        s3_prefix='imports',
        mime_types=[],
        max_file_size=1024,
        session=http
    )
    app.dependency_overrides[get_uploader_client] = lambda: uploader
    return http


class TestAdminImport:

    def test_initiate(self, client, uploader_http):
        response = client.post('/api/admin/import/initiate', json={
            'entities': ['fuels', {'type': 'users', 'sheetName': 'People'}]
        })

        assert response.status_code == 200
        assert response.json() == {
            'success': True,
            'uploadId': 'u-1',
            'uploadUrl': '/upload-and-scan/u-1',
            'statusUrl': 'http://uploader/status/u-1',
        }
        payload = uploader_http.post.call_args.kwargs['json']
        assert payload['metadata'] == {'entities': [{'type': 'fuels'}, {'type': 'users', 'sheetName': 'People'}]}
        assert payload['callback'] == 'http://localhost:8000/upload-callback'

    def test_unknown_entity(self, client, uploader_http):
        response = client.post('/api/admin/import/initiate', json={'entities': ['widgets']})

        assert response.status_code == 422
        uploader_http.post.assert_not_called()

    def test_empty_entities(self, client, uploader_http):
        assert client.post('/api/admin/import/initiate', json={'entities': []}).status_code == 422

    def test_uploader_failure(self, client, uploader_http):
        uploader_http.post.return_value = FakeResponse(503, text='unavailable')

        response = client.post('/api/admin/import/initiate', json={'entities': ['fuels']})

        assert response.status_code == 500
        assert response.json()['success'] is False

    def test_status(self, client, uploader_http):
        response = client.get('/api/admin/import/status', params={'statusUrl': 'http://uploader/status/u-1'})

        assert response.json() == {'success': True, 'status': {'uploadStatus': 'ready'}}

"""HTTP endpoints."""

import json
import time

import pytest
from fastapi.testclient import TestClient

import main
from engine.hydration_worker import HydrationWorker
from main import app
from models.hydration_types import HydrationStage, StageEvent


@pytest.fixture(scope='module')
def client():
    return TestClient(app)


def upload(data, name='doc.pdf'):
    return {'file': (name, data, 'application/pdf')}


class StalledPipeline:
    """Announces the first stage, then produces nothing until cancelled."""

    def process_document(self, data, cancel_token):
        yield StageEvent(stage=HydrationStage.OPENING, message="Opening document")
        while not cancel_token.is_cancelled:
            time.sleep(0.01)


PAGE = {'pageIndex': 0, 'dims': {'width': 612, 'height': 792}, 'blocks': [
    {'type': 'text', 'id': 'block-0-0', 'box': [10, 10, 80, 10], 'html': 'Hello'},
]}


class TestServiceInfo:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_root(self, client):
        assert client.get('/').json()['message'] == 'PDF Hydration API'


class TestHydrateEndpoint:

    def test_hydrate(self, client, two_paragraph_pdf):
        response = client.post('/hydrate', files=upload(two_paragraph_pdf))

        assert response.status_code == 200
        body = response.json()
        assert body['pageCount'] == 1
        assert [b['type'] for b in body['pages'][0]['blocks']] == ['text', 'text']
        assert body['pages'][0]['dims'] == {'width': 612.0, 'height': 792.0}

    def test_image_blob_travels_as_base64(self, client, image_pdf):
        blocks = client.post('/hydrate', files=upload(image_pdf)).json()['pages'][0]['blocks']

        assert isinstance(blocks[0]['blob'], str)

    def test_rejects_non_pdf_filename(self, client, two_paragraph_pdf):
        response = client.post('/hydrate', files=upload(two_paragraph_pdf, name='doc.txt'))

        assert response.status_code == 400

    def test_rejects_missing_signature(self, client):
        response = client.post('/hydrate', files=upload(b'hello, this is text'))

        assert response.status_code == 400

    def test_rejects_invalid_config(self, client, two_paragraph_pdf):
        response = client.post('/hydrate', files=upload(two_paragraph_pdf), data={'config': '{not json'})

        assert response.status_code == 400
        assert 'Invalid JSON' in response.json()['detail']

    def test_accepts_config(self, client, two_paragraph_pdf):
        config = json.dumps({'extraction': {'decode_image_data': False}})
        response = client.post('/hydrate', files=upload(two_paragraph_pdf), data={'config': config})

        assert response.status_code == 200


class TestStreamEndpoint:

    def test_events_end_with_complete(self, client, two_page_pdf):
        response = client.post('/hydrate/stream', files=upload(two_page_pdf))

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('application/x-ndjson')
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[0]['type'] == 'STAGE'
        assert events[-1]['type'] == 'COMPLETE'
        assert len(events[-1]['pages']) == 2
        assert [e['type'] for e in events].count('COMPLETE') == 1

    def test_stalled_run_ends_with_error(self, client, two_page_pdf, monkeypatch):
        monkeypatch.setattr(main, 'STREAM_IDLE_TIMEOUT_SECONDS', 0.2)
        monkeypatch.setattr(
            main, 'HydrationWorker',
            lambda data, config=None: HydrationWorker(data, config=config, pipeline=StalledPipeline()),
        )

        response = client.post('/hydrate/stream', files=upload(two_page_pdf))

        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert [e['type'] for e in events] == ['STAGE', 'ERROR']
        assert 'timed out' in events[-1]['message']


class TestReconstructEndpoint:

    def test_vector(self, client):
        rect = {'type': 'rect', 'left': 10, 'top': 10, 'width': 50, 'height': 20, 'stroke': '#ff0000'}
        response = client.post('/reconstruct', json={'pages': [PAGE], 'annotations': [[rect]], 'mode': 'vector'})

        assert response.status_code == 200
        assert response.headers['content-type'] == 'application/pdf'
        assert response.content.startswith(b'%PDF')

    def test_hydrated_pages_can_be_posted_back(self, client, two_paragraph_pdf):
        pages = client.post('/hydrate', files=upload(two_paragraph_pdf)).json()['pages']
        response = client.post('/reconstruct', json={'pages': pages, 'mode': 'raster'})

        assert response.status_code == 200
        assert response.content.startswith(b'%PDF')

    def test_unknown_mode(self, client):
        response = client.post('/reconstruct', json={'pages': [PAGE], 'mode': 'bogus'})

        assert response.status_code == 422

    def test_no_pages(self, client):
        response = client.post('/reconstruct', json={'pages': [], 'annotations': []})

        assert response.status_code == 422
        assert 'Export failed' in response.json()['detail']

    def test_block_outside_page(self, client):
        page = dict(PAGE, blocks=[dict(PAGE['blocks'][0], box=[-10, 10, 30, 10])])
        response = client.post('/reconstruct', json={'pages': [page]})

        assert response.status_code == 422

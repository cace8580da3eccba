# tests/conftest.py

import io
import json
import zipfile
from collections import defaultdict
import pytest
import requests
from ontoupdate import create_app
from config import TestingConfig
from ontoupdate.terminology.parser import ResourceParser

NARRATIVE = {"status": "generated", "div": "<div xmlns=\"http://www.w3.org/1999/xhtml\">Generated narrative</div>"}


@pytest.fixture(scope='function')
def app():
    """Function-scoped app built with TestingConfig, inside an app context."""
    app = create_app(TestingConfig)
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI runner for the `flask onto ...` commands."""
    return app.test_cli_runner()


@pytest.fixture(scope='session')
def parser():
    return ResourceParser('STU3')


def code_system_data(url, id='cs', version=None, narrative=True):
    data = {
        "resourceType": "CodeSystem",
        "id": id,
        "status": "active",
        "content": "complete",
        "concept": [{"code": "a", "display": "A"}],
    }
    if url is not None:
        data["url"] = url
    if version:
        data["version"] = version
    if narrative:
        data["text"] = NARRATIVE
    return data


def value_set_data(url, id='vs', version=None, narrative=True):
    data = {"resourceType": "ValueSet", "id": id, "status": "active"}
    if url is not None:
        data["url"] = url
    if version:
        data["version"] = version
    if narrative:
        data["text"] = NARRATIVE
    return data


STRUCTURE_DEFINITION = {
    "resourceType": "StructureDefinition",
    "id": "uk-patient",
    "url": "http://example.org/fhir/StructureDefinition/uk-patient",
    "name": "UKPatient",
    "status": "active",
    "kind": "resource",
    "abstract": False,
    "type": "Patient",
    "baseDefinition": "http://hl7.org/fhir/StructureDefinition/Patient",
    "derivation": "constraint",
}


@pytest.fixture
def code_system(parser):
    """Factory for parsed STU3 CodeSystems."""
    def _make(url, **kwargs):
        return parser.parse_json(code_system_data(url, **kwargs))
    return _make


@pytest.fixture
def value_set(parser):
    """Factory for parsed STU3 ValueSets."""
    def _make(url, **kwargs):
        return parser.parse_json(value_set_data(url, **kwargs))
    return _make


@pytest.fixture
def build_pack():
    """Builds zip archive bytes from {entry name: dict | str | bytes}."""
    def _build(files):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
            for name, content in files.items():
                if isinstance(content, (dict, list)):
                    content = json.dumps(content)
                archive.writestr(name, content)
        return buffer.getvalue()
    return _build


@pytest.fixture
def make_response():
    """Builds a fully-read requests.Response, usable with `with` and iter_content."""
    def _make(status_code=200, body=b'', reason=None, headers=None, url='http://onto.test/fhir'):
        response = requests.Response()
        response.status_code = status_code
        response.reason = reason or ('OK' if status_code < 400 else 'Error')
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode('utf-8')
        elif isinstance(body, str):
            body = body.encode('utf-8')
        response._content = body
        response._content_consumed = True
        response.headers.update(headers or {})
        response.url = url
        return response
    return _make


class FakeOntoServer:
    """In-memory stand-in for OntoServerClient with conditional-create semantics."""

    def __init__(self):
        self.resources = defaultdict(list)
        self.search_calls = []
        self.create_calls = []

    def add(self, resource):
        self.resources[(resource.resource_type, resource.url)].append(resource)

    def search(self, kind, url):
        self.search_calls.append((kind.value, url))
        return list(self.resources[(kind.value, url)])

    def conditional_create(self, resource, url):
        self.create_calls.append((resource.resource_type, url, resource.id))
        key = (resource.resource_type, url)
        if self.resources[key]:
            return {'created': False, 'status_code': 200, 'location': None}
        self.resources[key].append(resource)
        return {'created': True, 'status_code': 201,
                'location': f"{resource.resource_type}/{len(self.create_calls)}/_history/1"}

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def fake_server():
    return FakeOntoServer()


@pytest.fixture
def structure_definition_data():
    return dict(STRUCTURE_DEFINITION)


@pytest.fixture
def cs_data():
    """Factory for CodeSystem JSON dicts."""
    return code_system_data


@pytest.fixture
def vs_data():
    """Factory for ValueSet JSON dicts."""
    return value_set_data

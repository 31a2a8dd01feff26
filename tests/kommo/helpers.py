"""Shared utilities for Kommo tests."""

import copy
import re

import httpx

CITY_FIELD = {
    'id': 501,
    'name': 'City',
    'code': None,
    'type': 'select',
    'enums': [
        {'id': 7001, 'value': 'Bogotá', 'sort': 1},
        {'id': 7002, 'value': 'Medellín', 'sort': 2},
        {'id': 7003, 'value': 'Cali', 'sort': 3},
    ],
}
NAME_FIELD = {'id': 502, 'name': 'Nombre', 'code': 'FIRST_NAME', 'type': 'text', 'enums': None}
SOURCE_FIELD = {
    'id': 503,
    'name': 'Lead source',
    'code': 'SOURCE',
    'type': 'multiselect',
    'enums': [
        {'id': 8001, 'value': 'Google Ads', 'sort': 10},
        {'id': 8002, 'value': 'Facebook - Paid', 'sort': 20},
        {'id': 8003, 'value': 'Referral', 'sort': 30},
        {'id': 8004, 'value': 'Trade show', 'sort': 40},
        {'id': 8005, 'value': 'Cold call', 'sort': 50},
        {'id': 8006, 'value': 'Website form', 'sort': 60},
    ],
}
BUDGET_FIELD = {'id': 504, 'name': 'Budget', 'code': None, 'type': 'numeric', 'enums': None}


def basic_lead_data(lead_id: int = 123) -> dict:
    return {
        'id': lead_id,
        'name': 'Test lead',
        'pipeline_id': 55,
        'custom_fields_values': [
            {
                'field_id': 502,
                'field_name': 'Nombre',
                'field_code': 'FIRST_NAME',
                'field_type': 'text',
                'values': [{'value': 'Pedro'}],
            },
            {
                'field_id': 501,
                'field_name': 'City',
                'field_code': None,
                'field_type': 'select',
                'values': [{'value': 'Cali', 'enum_id': 7003}],
            },
        ],
    }


class FakeKommo:
    def __init__(self):
        self.db = {'leads': {}, 'contacts': {}, 'companies': {}, 'customers': {}}
        self.custom_fields = {'leads': [], 'contacts': [], 'companies': [], 'customers': []}
        self.requests = []
        self.updates = []

    def add_lead(self, lead: dict = None) -> dict:
        lead = lead or basic_lead_data()
        self.db['leads'][lead['id']] = lead
        return lead

    def add_custom_fields(self, kind: str, *fields: dict):
        self.custom_fields[kind].extend(copy.deepcopy(f) for f in fields)

    def requests_for(self, method: str, path: str = None) -> list:
        return [r for r in self.requests if r[0] == method and (path is None or r[1] == path)]


def _response(request: httpx.Request, status_code: int, json_data=None) -> httpx.Response:
    if json_data is None:
        return httpx.Response(status_code, request=request)
    return httpx.Response(status_code, json=json_data, request=request)


class FakeKommoClient:
    """
    Stands in for the shared httpx client, answering requests from a FakeKommo.

    error_responses maps (method, path) to either a (status_code, body) tuple or an exception to raise, eg
    {('PATCH', 'leads'): (400, '{"title": "Bad Request"}')}
    """

    def __init__(self, fake_kommo: FakeKommo, error_responses: dict = None):
        self.fake = fake_kommo
        self.error_responses = error_responses or {}

    async def request(self, *, method: str, url: str, headers=None, params=None, json=None, timeout=None):
        request = httpx.Request(method, url, params=params)
        path = re.search(r'/api/v4/(.*)$', url).group(1).strip('/')
        self.fake.requests.append((method, path, params, json))

        error = self.error_responses.get((method, path))
        if isinstance(error, Exception):
            raise error
        elif error:
            status_code, body = error
            return httpx.Response(status_code, text=body, request=request)

        parts = path.split('/')
        kind = parts[0]
        if len(parts) >= 2 and parts[1] == 'custom_fields':
            return self._custom_fields(request, method, kind, parts[2:], params or {}, json)

        if method == 'GET':
            entity = self.fake.db[kind].get(int(parts[1]))
            # Kommo answers 204 rather than 404 for a missing entity
            return _response(request, 200, entity) if entity else _response(request, 204)
        assert method == 'PATCH'
        updated = []
        for item in json:
            if item['id'] not in self.fake.db[kind]:
                return httpx.Response(404, text='{"title": "Not Found"}', request=request)
            self.fake.updates.append((kind, item['id'], item['custom_fields_values']))
            updated.append({'id': item['id']})
        return _response(request, 200, {'_embedded': {kind: updated}})

    def _custom_fields(self, request, method: str, kind: str, extra: list, params: dict, json):
        fields = self.fake.custom_fields[kind]
        if method == 'GET':
            page, limit = int(params.get('page', 1)), int(params.get('limit', 50))
            page_fields = fields[(page - 1) * limit : page * limit]
            if not page_fields:
                return _response(request, 204)
            links = {'self': {'href': str(request.url)}}
            if len(fields) > page * limit:
                links['next'] = {'href': f'next-page-{page + 1}'}
            return _response(request, 200, {'_embedded': {'custom_fields': page_fields}, '_links': links})
        elif method == 'POST':
            created = []
            for item in json:
                new_field = {'id': 900 + len(fields), 'code': None, **item}
                fields.append(new_field)
                created.append(new_field)
            return _response(request, 200, {'_embedded': {'custom_fields': created}})
        elif method == 'PATCH':
            updated = []
            for item in json:
                existing = next((f for f in fields if f['id'] == item['id']), None)
                if not existing:
                    return httpx.Response(404, text='{"title": "Not Found"}', request=request)
                existing.update(item)
                updated.append(existing)
            return _response(request, 200, {'_embedded': {'custom_fields': updated}})
        assert method == 'DELETE'
        field_id = int(extra[0])
        self.fake.custom_fields[kind] = [f for f in fields if f['id'] != field_id]
        return _response(request, 204)

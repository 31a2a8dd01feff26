import asyncio
import logging
from typing import Any, Optional

import httpx
import logfire
from httpx_limiter import AsyncRateLimitedTransport, Rate

from kommo_tools.core.config import settings
from kommo_tools.exceptions import KommoAPIError
from kommo_tools.kommo.models import EntityKind

logger = logging.getLogger('kommo.api')

RATE_LIMIT_STATUS_CODE = 429
MAX_ERROR_BODY = 500

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    """
    We use a singleton client so the rate limiting is kept across all requests. It's created lazily so it binds to
    the running event loop.
    """
    global _client
    if _client is None:
        transport = AsyncRateLimitedTransport.create(
            Rate.create(magnitude=settings.kommo_api_max_rate, duration=settings.kommo_api_rate_period)
        )
        _client = httpx.AsyncClient(transport=transport)
    return _client


def _looks_like_html(text: str) -> bool:
    text = text.strip()
    lowered = text.lower()
    if lowered.startswith('<!doctype') or lowered.startswith('<html'):
        return True
    return text.startswith('<!') and ('<html' in lowered or '<body' in lowered)


def _parse_response(response: httpx.Response, url: str) -> Any:
    """Kommo returns application/hal+json, and an HTML page when auth or the account URL is wrong."""
    if response.status_code == 204 or not response.text.strip():
        return None
    try:
        return response.json()
    except ValueError as e:
        if _looks_like_html(response.text):
            raise KommoAPIError(
                response.status_code,
                'API returned HTML instead of JSON. This usually means authentication failed or the URL is '
                f'incorrect. Status: {response.status_code}',
                url,
                response.text[:MAX_ERROR_BODY],
            ) from e
        preview = response.text[:200].replace('\n', '\\n')
        raise KommoAPIError(
            response.status_code, f'Invalid JSON response: {e}. Preview: {preview}', url, response.text[:MAX_ERROR_BODY]
        ) from e


async def kommo_request(
    endpoint: str,
    *,
    method: str = 'GET',
    query_params: Optional[dict] = None,
    data: Optional[dict | list] = None,
    retry: int = 0,
) -> Any:
    """
    Make a request to the Kommo API v4.

    Args:
        endpoint: The API endpoint (without the /api/v4 prefix), eg 'leads/123'
        method: HTTP method (GET, POST, PATCH, DELETE)
        query_params: Query parameters dict, None values are dropped
        data: Request body data
        retry: Internal retry counter

    Returns:
        Response JSON data, or None when Kommo returns no content
    """
    endpoint = endpoint.lstrip('/')
    url = f'{settings.kommo_api_url}/{endpoint}'
    headers = {
        'Authorization': f'Bearer {settings.kommo_access_token}',
        'Content-Type': 'application/json',
        'Accept': 'application/json',
    }
    if query_params:
        query_params = {k: v for k, v in query_params.items() if v is not None}

    with logfire.span(f'{method} {endpoint}'):
        try:
            response = await _get_client().request(
                method=method, url=url, headers=headers, params=query_params, json=data, timeout=settings.kommo_timeout
            )
        except httpx.HTTPError as e:
            logger.error(f'Kommo API request {method} {endpoint} failed: {e}')
            raise KommoAPIError(None, f'Request failed: {e}', url) from e

        logger.info(
            f'Request method={method} url={endpoint} status_code={response.status_code} '
            f'rate_limit_remaining={response.headers.get("x-ratelimit-remaining")}'
        )
        if settings.dev_mode and data is not None:
            logger.debug(f'Request body: {str(data)[:200]}')

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if (
                settings.kommo_api_enable_retry
                and e.response.status_code == RATE_LIMIT_STATUS_CODE
                and retry < settings.kommo_api_max_retry
            ):
                wait_time = (retry + 1) * 2
                logger.warning(
                    f'Kommo API rate limit for {method} {endpoint}, retry {retry + 1}/{settings.kommo_api_max_retry}, '
                    f'waiting {wait_time}s...'
                )
                await asyncio.sleep(wait_time)
                return await kommo_request(
                    endpoint, method=method, query_params=query_params, data=data, retry=retry + 1
                )
            body = response.text[:MAX_ERROR_BODY]
            logger.error(f'Kommo API error: {e}. Response: {body}')
            raise KommoAPIError(
                response.status_code,
                body or f'HTTP {response.status_code} {response.reason_phrase}',
                url,
                body,
            ) from e
        return _parse_response(response, url)


def _embedded(response: Optional[dict], key: str) -> list:
    if not isinstance(response, dict):
        return []
    return (response.get('_embedded') or {}).get(key) or []


async def get_entity(kind: EntityKind, entity_id: int) -> dict:
    """Get a lead/contact/company/customer from Kommo"""
    entity = await kommo_request(f'{kind.value}/{entity_id}')
    if not entity:
        raise KommoAPIError(404, f'{kind.singular} with ID {entity_id} not found')
    return entity


async def apply_field_update(kind: EntityKind, entity_id: int, payload: list[dict]) -> dict:
    """
    Write custom field values to an entity in one PATCH. Kommo takes a list of entities, we always send one.
    """
    body = [{'id': entity_id, 'custom_fields_values': payload}]
    try:
        response = await kommo_request(kind.value, method='PATCH', data=body)
    except KommoAPIError as e:
        if e.status_code == 404:
            raise KommoAPIError(404, f'{kind.singular} with ID {entity_id} not found', e.url) from e
        raise
    updated = _embedded(response, kind.value)
    if not updated:
        raise KommoAPIError(None, f'Failed to update {kind.singular.lower()}: no {kind.value} returned in response')
    return updated[0]


async def list_custom_fields(kind: EntityKind, *, page: int = 1, limit: int = 50) -> Optional[dict]:
    """One page of the custom field definitions for an entity kind"""
    return await kommo_request(f'{kind.value}/custom_fields', query_params={'page': page, 'limit': limit})


async def create_custom_field(kind: EntityKind, field_data: dict) -> dict:
    """Create a custom field definition"""
    response = await kommo_request(f'{kind.value}/custom_fields', method='POST', data=[field_data])
    fields = _embedded(response, 'custom_fields')
    if not fields:
        raise KommoAPIError(None, 'Custom field created but no data returned')
    return fields[0]


async def update_custom_field(kind: EntityKind, field_id: int, changed_fields: dict) -> dict:
    """Update a custom field definition, eg renaming it or changing its options"""
    response = await kommo_request(
        f'{kind.value}/custom_fields', method='PATCH', data=[{'id': field_id, **changed_fields}]
    )
    fields = _embedded(response, 'custom_fields')
    if not fields:
        raise KommoAPIError(None, 'Custom field updated but no data returned')
    return fields[0]


async def delete_custom_field(kind: EntityKind, field_id: int) -> None:
    """Delete a custom field definition"""
    await kommo_request(f'{kind.value}/custom_fields/{field_id}', method='DELETE')

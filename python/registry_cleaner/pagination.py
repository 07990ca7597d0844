"""
Paginated listing of registry endpoints.

Two styles are supported:

* cursor in body (Docker Hub): every page is ``{"next": <url|null>, "results": [...]}``;
  only a null ``next`` ends the listing, empty pages included;
* link relation in headers (GitHub): pages are JSON arrays fetched with
  ``?per_page=N&page=K``; a ``rel="next"`` link continues, its absence or an
  empty page ends the listing.

Both yield one batch (a list of raw items) per page and raise
``PaginationError`` when a page is an error object or otherwise malformed.
"""

from typing import Any, Dict, Iterator, List, Optional

import requests

from registry_cleaner.error_utils import create_pagination_error
from registry_cleaner.events import Action, EventRecorder
from registry_cleaner.http_client import RegistryHttpClient, status_of
from registry_cleaner.models import PageCursor, ResourceKind

DEFAULT_PAGE_SIZE = 100


def _decode_page(response: Optional[requests.Response], url: str) -> Any:
    """Decode a listing response body, raising PaginationError for error payloads."""
    if response is None:
        raise create_pagination_error(url, "listing endpoint unreachable", status_of(response))

    try:
        body = response.json()
    except ValueError:
        raise create_pagination_error(url, "response body is not valid JSON", response.status_code)

    if isinstance(body, dict) and "message" in body:
        raise create_pagination_error(url, f"API error: {body['message']}", response.status_code)

    if response.status_code >= 400:
        raise create_pagination_error(url, f"HTTP {response.status_code}", response.status_code)

    return body


def iter_cursor_pages(
    client: RegistryHttpClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    recorder: Optional[EventRecorder] = None,
) -> Iterator[List[Any]]:
    """Follow ``next`` URLs embedded in each page body."""
    cursor = PageCursor(url=url, page=1)
    while not cursor.exhausted:
        response = client.get(cursor.url, headers=headers)
        body = _decode_page(response, cursor.url)

        if not isinstance(body, dict) or not isinstance(body.get("results"), list):
            raise create_pagination_error(cursor.url, "page has no 'results' list", status_of(response))

        results = body["results"]
        if recorder:
            recorder.info(Action.PAGER, ResourceKind.REPO,
                          message=f"Processing page {cursor.page} with {len(results)} entries")
        yield results

        next_url = body.get("next")
        cursor = PageCursor(url=next_url if isinstance(next_url, str) and next_url else None, page=cursor.page + 1)

    if recorder:
        recorder.info(Action.PAGER, ResourceKind.REPO, message="No next page -> done")


def iter_link_pages(
    client: RegistryHttpClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    recorder: Optional[EventRecorder] = None,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> Iterator[List[Any]]:
    """Walk numbered pages while the response carries a ``rel="next"`` link."""
    cursor = PageCursor(url=url, page=1)
    while not cursor.exhausted:
        response = client.get(cursor.url, headers=headers, params={"per_page": per_page, "page": cursor.page})
        body = _decode_page(response, cursor.url)

        if not isinstance(body, list):
            raise create_pagination_error(cursor.url, "page is not a list", status_of(response))

        if not body:
            if recorder:
                recorder.info(Action.PAGER, ResourceKind.REPO, message=f"No versions on page {cursor.page} -> done")
            return

        if recorder:
            recorder.info(Action.PAGER, ResourceKind.REPO,
                          message=f"Processing page {cursor.page} with {len(body)} versions")
        yield body

        if "next" in (response.links or {}):
            cursor = PageCursor(url=cursor.url, page=cursor.page + 1)
            if recorder:
                recorder.info(Action.PAGER, ResourceKind.REPO, message=f"Proceeding to next page: {cursor.page}")
        else:
            if recorder:
                recorder.info(Action.PAGER, ResourceKind.REPO,
                              message=f'No Link: rel="next" header - finished (processed page {cursor.page})')
            cursor = PageCursor(url=None, page=cursor.page)

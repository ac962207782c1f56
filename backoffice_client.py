#!/usr/bin/env python3
"""
Back-office REST Client
=======================

Single entry point for the back-office endpoints the recipe import
pipeline consumes: the recipe parser, the unit and ingredient catalogs,
and recipe persistence.

Usage:
    from backoffice_client import BackofficeClient, BackofficeConflictError

    client = BackofficeClient()
    try:
        draft = client.parse_recipe("2 cups flour\\n1 egg ...", use_ai=True)
        units = client.list_units()
        try:
            client.create_ingredient("Basil")
        except BackofficeConflictError:
            ...  # already exists, look it up instead
    finally:
        client.close()

Architecture:
    BackofficeClient
    ├── Connection pooling via requests.Session
    ├── Retry strategy with exponential backoff (GET only)
    ├── Rate limiting via backoffice_rate_limit()
    └── HTTP 409 mapped to BackofficeConflictError
"""

from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import (
    BACKOFFICE_URL,
    BACKOFFICE_TIMEOUT,
    backoffice_rate_limit,
    get_backoffice_headers,
)
from tools.logging_utils import get_logger

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class BackofficeClientError(Exception):
    """
    Base exception for BackofficeClient errors.

    Attributes:
        message: Human-readable error description
        operation: The operation that failed (e.g., "create_unit")
        details: Additional context (e.g., HTTP status code, response body)
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.operation = operation
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context."""
        parts = [self.message]
        if self.operation:
            parts.insert(0, f"[{self.operation}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class BackofficeAPIError(BackofficeClientError):
    """Exception raised for API-specific errors (HTTP failures, timeouts)."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if status_code is not None:
            details['status_code'] = status_code
        if response_body:
            # Truncate long response bodies
            details['response'] = response_body[:200] + "..." if len(response_body) > 200 else response_body
        super().__init__(message, operation, details)
        self.status_code = status_code
        self.response_body = response_body


class BackofficeConflictError(BackofficeAPIError):
    """The entity being created already exists (HTTP 409)."""


# =============================================================================
# CLIENT
# =============================================================================

class BackofficeClient:
    """
    Client for the back-office REST API.

    Features:
    - HTTP connection pooling via requests.Session
    - Automatic retry with exponential backoff for transient read failures
    - Rate limiting integration via backoffice_rate_limit()
    - Comprehensive error handling with context

    Writes are never retried automatically: a create that timed out after
    the server committed it would otherwise be duplicated.
    """

    # Retry configuration
    RETRY_TOTAL = 3
    RETRY_BACKOFF_FACTOR = 0.5
    RETRY_STATUS_FORCELIST = [429, 500, 502, 503, 504]

    # Connection pool configuration
    POOL_CONNECTIONS = 4
    POOL_MAXSIZE = 8

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the client with connection pooling.

        Args:
            base_url: Back-office base URL (default: from config)
            timeout: Request timeout in seconds (default: from config)
            headers: Override default headers (default: from config)
        """
        self.base_url = (base_url or BACKOFFICE_URL).rstrip('/')
        self.api_base = f"{self.base_url}/api"
        self.timeout = timeout or BACKOFFICE_TIMEOUT

        self.session = requests.Session()

        retry_strategy = Retry(
            total=self.RETRY_TOTAL,
            backoff_factor=self.RETRY_BACKOFF_FACTOR,
            status_forcelist=self.RETRY_STATUS_FORCELIST,
            allowed_methods=["GET"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            pool_connections=self.POOL_CONNECTIONS,
            pool_maxsize=self.POOL_MAXSIZE,
            max_retries=retry_strategy,
        )

        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)
        self.session.headers.update(headers or get_backoffice_headers())

        logger.debug(f"BackofficeClient initialized: base_url={self.base_url}")

    def close(self) -> None:
        """Clean up connections."""
        self.session.close()

    def __enter__(self) -> "BackofficeClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
    ) -> Union[Dict[str, Any], List[Any]]:
        """
        Perform an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint (e.g., "/units")
            data: JSON body for POST requests
            params: Query parameters
            operation: Name reported in raised errors

        Returns:
            Parsed JSON response, or empty dict for 204

        Raises:
            BackofficeConflictError: On HTTP 409
            BackofficeAPIError: On other HTTP or network errors
        """
        url = f"{self.api_base}{endpoint}"
        operation = operation or f"{method} {endpoint}"

        try:
            with backoffice_rate_limit():
                response = self.session.request(
                    method, url, json=data, params=params, timeout=self.timeout
                )
            response.raise_for_status()

            if response.status_code == 204 or not response.text:
                return {}
            return response.json()

        except requests.exceptions.HTTPError as e:
            # Response.__bool__ is False for error statuses, so compare to None
            status_code = e.response.status_code if e.response is not None else None
            body = e.response.text if e.response is not None else None
            error_cls = BackofficeConflictError if status_code == 409 else BackofficeAPIError
            raise error_cls(
                _server_message(e.response) or f"HTTP error: {e}",
                operation=operation,
                status_code=status_code,
                response_body=body,
            ) from e
        except requests.exceptions.Timeout as e:
            raise BackofficeAPIError(
                f"Request timed out after {self.timeout}s",
                operation=operation,
                details={'endpoint': endpoint, 'timeout': self.timeout},
            ) from e
        except requests.exceptions.JSONDecodeError as e:
            # Non-JSON body on a 2xx response
            raise BackofficeAPIError(
                f"Invalid JSON response: {e}",
                operation=operation,
                details={'endpoint': endpoint},
            ) from e
        except requests.exceptions.RequestException as e:
            raise BackofficeAPIError(
                f"Network error: {e}",
                operation=operation,
                details={'endpoint': endpoint},
            ) from e

    def _get_items(self, endpoint: str, operation: str) -> List[Dict[str, Any]]:
        """GET a collection that may be a bare list or an {"items": [...]} envelope."""
        data = self._request("GET", endpoint, operation=operation)
        if isinstance(data, list):
            return data
        return data.get('items', [])

    # -------------------------------------------------------------------------
    # Parser
    # -------------------------------------------------------------------------

    def parse_recipe(self, text: str, use_ai: bool = False) -> Dict[str, Any]:
        """
        Parse raw recipe text into a draft recipe.

        Args:
            text: Unstructured recipe text
            use_ai: Ask the parser to use its LLM mode

        Returns:
            Draft recipe JSON (name, instructions, ingredients, ...)
        """
        return self._request(
            "POST", "/recipes/parse",
            data={'text': text, 'useAI': use_ai},
            operation="parse_recipe",
        )

    # -------------------------------------------------------------------------
    # Units & ingredients
    # -------------------------------------------------------------------------

    def list_units(self) -> List[Dict[str, Any]]:
        """Fetch all units of measure."""
        return self._get_items('/units', operation="list_units")

    def create_unit(
        self,
        name: str,
        abbreviation: Optional[str] = None,
        type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a new unit of measure.

        Args:
            name: Unit name
            abbreviation: Short form (omitted from the request when None)
            type: WEIGHT, VOLUME, COUNT, LENGTH, TEMPERATURE or OTHER

        Returns:
            Created unit data
        """
        data: Dict[str, Any] = {'name': name}
        if abbreviation is not None:
            data['abbreviation'] = abbreviation
        if type is not None:
            data['type'] = type
        return self._request("POST", '/units', data=data, operation="create_unit")

    def list_ingredients(self) -> List[Dict[str, Any]]:
        """Fetch all ingredients."""
        return self._get_items('/ingredients', operation="list_ingredients")

    def create_ingredient(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a new ingredient.

        Raises:
            BackofficeConflictError: If an ingredient with this name exists
        """
        return self._request(
            "POST", '/ingredients',
            data={'name': name, 'description': description},
            operation="create_ingredient",
        )

    # -------------------------------------------------------------------------
    # Recipes
    # -------------------------------------------------------------------------

    def create_recipe(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a recipe with its ingredient lines in one request.

        Args:
            data: Recipe payload (see RecipeCreatePayload.to_dict)

        Returns:
            Created recipe data
        """
        return self._request("POST", '/recipes', data=data, operation="create_recipe")


def _server_message(response: Optional[requests.Response]) -> Optional[str]:
    """Pull the back-office's {"message": ...} out of an error response."""
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get('message'):
        return str(body['message'])
    return None

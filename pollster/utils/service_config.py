"""Simple utilities for managing tracked services from scripts.

Example:
    ```python
    from pollster.utils.service_config import add_service, list_services

    service_id = add_service("bing", "https://www.bing.com")
    for service in list_services():
        print(service["name"], service["status"], service["lastCheck"])
    ```
"""

import httpx
import os
from loguru import logger
from typing import Any, Dict, List

DEFAULT_API_URL = "http://localhost:8080"


def get_api_url() -> str:
    """Get API URL from environment variable or use default"""
    return os.getenv("POLLSTER_URL", DEFAULT_API_URL).rstrip("/")


def add_service(name: str, url: str) -> str:
    """Start tracking a service.

    Args:
        name: Label shown for the service
        url: Endpoint to probe with GET

    Returns:
        The id allocated for the service

    Raises:
        httpx.HTTPError: If request fails
    """
    api_url = get_api_url()
    try:
        response = httpx.post(f"{api_url}/service", json={"name": name, "url": url})
        response.raise_for_status()
        service_id = response.json()["id"]
    except Exception as e:
        logger.error(f"Failed to add service {name}: {e}")
        raise

    logger.info(f"Service {name} added with id {service_id}")
    return service_id


def list_services() -> List[Dict[str, Any]]:
    """Get all tracked services with their last known status"""
    response = httpx.get(f"{get_api_url()}/service")
    response.raise_for_status()
    return response.json()["services"]


def remove_service(service_id: str) -> bool:
    """Stop tracking a service. Returns False if the service was unknown."""
    response = httpx.delete(f"{get_api_url()}/service/{service_id}")
    if response.status_code == 404:
        logger.warning(f"Service {service_id} is not tracked")
        return False
    response.raise_for_status()
    logger.info(f"Service {service_id} removed")
    return True

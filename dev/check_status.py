#!/usr/bin/env python3
from loguru import logger

from pollster.utils.service_config import get_api_url, list_services


def format_service_status(service: dict) -> str:
    """Format a single service status into a readable string"""
    return (
        f"{service['name']:20} | "
        f"Status: {service['status']:7} | "
        f"Last check: {service['lastCheck']} | "
        f"{service['url']}"
    )


def main():
    """Check and display status of all services"""
    logger.info(f"Checking services status at {get_api_url()}")

    try:
        services = list_services()
    except Exception as e:
        logger.error(f"Failed to get services status: {e}")
        exit(1)

    print("\nServices Status:")
    print("-" * 80)

    if not services:
        print("No services registered yet.")
        return

    for service in sorted(services, key=lambda s: s["name"]):
        print(format_service_status(service))


if __name__ == "__main__":
    main()

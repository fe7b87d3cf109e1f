#!/usr/bin/env python3
"""
Check that the hosted backend is up and responding.
"""

import sys

from app_config import configure_logging, load_config
from api_diagnostics import check_status


def main():
    config = load_config()
    configure_logging(config)

    print("===== Checking Service Status =====")
    print(f"Checking service at: {config.render_api_url}")
    status = check_status(config.render_api_url, timeout=config.request_timeout)

    if status['online']:
        print("\n✅ Service is UP and responding")
        print(f"Response time: {status['response_time_ms']}ms")
        print(f"Response data: {status['data']}")
    elif status['status'] is not None:
        print(f"\n❌ Service returned error status: {status['status']}")
    else:
        print("\n❌ Failed to connect to service")
        print(f"Error details: {status['error']}")
        print("\nPossible causes:")
        print("1. The service is down or sleeping")
        print("2. Network connectivity issues")
        print("3. Firewall or security restrictions")

    print("\n===== Status Check Complete =====")
    sys.exit(0 if status['online'] else 1)


if __name__ == "__main__":
    main()

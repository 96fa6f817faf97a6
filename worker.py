#!/usr/bin/env python3
"""
XCH Subscription Billing Worker - Entry Point
"""

from billing.main import main
import asyncio

if __name__ == "__main__":
    asyncio.run(main())

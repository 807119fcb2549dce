#!/usr/bin/env python3
"""
Example: Run a checkout against a running gateway.

Posts a payment-initiation request and, for sandbox payments, shows the
resulting merchant notifications once the outbox has drained.

Usage:
    python simulate_checkout.py m1 1500

    python simulate_checkout.py m1 1500 --email buyer@example.com --currency SSP
"""

import argparse
import asyncio
import json
import sys

import aiohttp


async def pay(api_url: str, merchant_id: str, amount: float, currency: str, email: str = None) -> dict:
    payload = {
        "merchant_id": merchant_id,
        "amount": amount,
        "currency": currency
    }
    if email:
        payload["customer_email"] = email

    async with aiohttp.ClientSession() as session:
        async with session.post(f"{api_url}/functions/pay", json=payload) as response:
            return await response.json()


async def merchant_notifications(api_url: str, merchant_id: str) -> list:
    async with aiohttp.ClientSession() as session:
        async with session.get(f"{api_url}/merchants/{merchant_id}/notifications") as response:
            return (await response.json()).get('data', [])


async def main():
    parser = argparse.ArgumentParser(description='Initiate a payment against the gateway')
    parser.add_argument('merchant_id', help='Merchant identifier')
    parser.add_argument('amount', type=float, help='Amount to charge')
    parser.add_argument('--currency', default='SSP', help='Currency code (default: SSP)')
    parser.add_argument('--email', help='Customer email (optional)')
    parser.add_argument(
        '--api-url',
        default='http://localhost:8000',
        help='API server URL (default: http://localhost:8000)'
    )
    parser.add_argument(
        '--wait',
        type=float,
        default=6,
        help='Seconds to wait for notifications (default: 6)'
    )

    args = parser.parse_args()

    print(f"Paying {args.amount} {args.currency} to merchant {args.merchant_id}...")

    try:
        result = await pay(args.api_url, args.merchant_id, args.amount, args.currency, args.email)
    except aiohttp.ClientError as e:
        print(f"\n❌ Connection error: {e}")
        print("   Make sure the API server is running.")
        sys.exit(1)

    print("Response:")
    print(json.dumps(result, indent=2))

    if not result.get('ok'):
        print(f"\n❌ Payment failed: {result.get('error') or 'rejected by processor'}")
        sys.exit(1)

    if result.get('test_simulated'):
        print("\n✅ Sandbox payment completed (simulated)")
    else:
        link = ((result.get('flutterwave') or {}).get('data') or {}).get('link')
        print(f"\n✅ Payment {result['payment_id']} is pending")
        if link:
            print(f"   Checkout link: {link}")
        return

    await asyncio.sleep(args.wait)
    notifications = await merchant_notifications(args.api_url, args.merchant_id)
    print(f"\nMerchant inbox ({len(notifications)}):")
    for notification in notifications[:5]:
        print(f"  [{notification['title']}] {notification['message']}")


if __name__ == '__main__':
    asyncio.run(main())

"""
Simple merchant usage example (server-side). The storefront sends the cart
total to the merchant's server, which opens a Cashfree order through this
package and hands the payment_session_id back to Cashfree's checkout JS.
"""
import asyncio
import os

from payment_providers import CashfreeConnector, CustomerDetails, InitiatePaymentRequest


async def run():
    os.environ.setdefault("CASHFREE_API_KEY", "")  # set your sandbox app id in env
    os.environ.setdefault("CASHFREE_SECRET_KEY", "")
    connector = CashfreeConnector()

    # Amounts are always minor units: 50000 paise is INR 500.00
    req = InitiatePaymentRequest(
        amount=50000,
        currency="INR",
        resource_id="cart_123",
        customer=CustomerDetails(id="cus_1", email="buyer@example.com", phone="9876543210"),
    )
    session = await connector.initiate(req)
    print("Order:", session.provider_order_id, session.canonical_status.value)
    print("Checkout session:", session.raw_payload.get("payment_session_id"))

    # After the customer returns from checkout, poll until the order settles
    check = await connector.get_status(session)
    print("Status:", check.status.value, f"({check.outcome.value} after {check.attempts} attempts)")


if __name__ == "__main__":
    asyncio.run(run())

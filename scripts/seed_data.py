# scripts/seed_data.py
"""Seed database with the plan catalog, a payment method and a demo tenant"""
import asyncio

from otohub_billing.db.database import async_session_local, init_db
from otohub_billing.services.payment_method_service import PaymentMethodService
from otohub_billing.services.plan_catalog import PlanCatalog
from otohub_billing.services.subscription_service import SubscriptionService


async def seed_data():
    """Seed database with test data"""
    await init_db()

    async with async_session_local() as session:
        created = await PlanCatalog(session).seed_default_plans()
        print(f"Seeded {len(created)} plan(s)")

        payment_methods = PaymentMethodService(session)
        if not await payment_methods.list_methods():
            method = await payment_methods.create_method({
                "provider": "BCA",
                "account_name": "PT OtoHub Indonesia",
                "account_number": "1234567890",
                "instructions": "Transfer the exact invoice amount and upload the receipt.",
            }, actor_id="seed-script")
            print(f"Created payment method: {method.provider}")

        tenant = await SubscriptionService(session).create_tenant("Demo Dealership", actor_id="seed-script")
        print(f"Created tenant: {tenant.name} ({tenant.id})")
        print(f"Trial ends at: {tenant.trial_ends_at.isoformat()}")


if __name__ == "__main__":
    asyncio.run(seed_data())

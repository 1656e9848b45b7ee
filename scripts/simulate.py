"""
Concurrency Simulation Script

Fires many customers at the API at once: each signs up, fills a cart
with random customized items and checks out. Then a burst of admins
races to move one order through the same status transition, which must
succeed exactly once.

Requires a running API, a restaurant with active products and an admin
account (pass its credentials with --admin-email and --admin-password).
Run from project root: python scripts/simulate.py
"""

import asyncio
import sys
import random
import time
import uuid
import argparse
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_CUSTOMERS = 50
ADMIN_EMAIL = "admin@test.com"
ADMIN_PASSWORD = "admin12345"

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
STREETS = ["Main St", "Broadway", "5th Avenue", "Park Ave", "Madison Ave", "Lexington Ave"]
NOTES = [None, "No onions please", "Well done", "Cut in half", "Sauce on the side"]


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def random_customizations(product: dict) -> list[dict[str, Any]]:
    """Pick a random subset of the product's extras and removable components."""
    selections = [
        {"type": "EXTRA", "reference_id": e["extra_id"]}
        for e in product["extras"]
        if random.random() < 0.4
    ]
    selections += [
        {"type": "REMOVED_COMPONENT", "reference_id": c["component_id"]}
        for c in product["components"]
        if c["is_removable"] and random.random() < 0.25
    ]
    return selections


def random_fulfillment(tables: list[dict]) -> tuple[str, dict[str, Any]]:
    kind = random.choice(["DELIVERY", "PICKUP", "DINE_IN"] if tables else ["DELIVERY", "PICKUP"])
    later = datetime.now() + timedelta(minutes=random.randint(30, 240))
    if kind == "DELIVERY":
        return kind, {
            "contact_name": random.choice(FIRST_NAMES),
            "phone_number": f"555-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
            "street": f"{random.randint(1, 999)} {random.choice(STREETS)}",
        }
    if kind == "PICKUP":
        return kind, {"contact_name": random.choice(FIRST_NAMES), "pickup_time": later.isoformat()}
    return kind, {"table_id": random.choice(tables)["id"], "reservation_time": later.isoformat()}


# =============================================================================
# CUSTOMER FLOW
# =============================================================================

async def run_customer(
    client: httpx.AsyncClient,
    num: int,
    restaurant_id: int,
    products: list[dict],
    tables: list[dict],
) -> dict[str, Any]:
    """Sign up, add 1-4 lines, check the cart total, check out."""
    start_time = time.time()
    result: dict[str, Any] = {"customer": num, "success": False}
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/auth/signup",
            json={
                "name": f"{random.choice(FIRST_NAMES)} {num}",
                "email": f"sim-{uuid.uuid4().hex[:12]}@example.com",
                "password": "simulation",
            },
        )
        response.raise_for_status()
        headers = auth_header(response.json()["token"])

        expected = Decimal("0")
        for _ in range(random.randint(1, 4)):
            product = random.choice(products)
            quantity = random.randint(1, 3)
            response = await client.post(
                f"{API_BASE_URL}/api/cart/items",
                headers=headers,
                json={
                    "product_id": product["id"],
                    "quantity": quantity,
                    "customizations": random_customizations(product),
                    "note": random.choice(NOTES),
                },
            )
            response.raise_for_status()
            expected += Decimal(response.json()["final_price_snapshot"]) * quantity

        totals = (await client.get(f"{API_BASE_URL}/api/cart/totals", headers=headers)).json()
        if Decimal(totals["total_amount"]) != expected:
            result["error"] = f"cart total {totals['total_amount']} != expected {expected}"

        kind, details = random_fulfillment(tables)
        response = await client.post(
            f"{API_BASE_URL}/api/orders/checkout",
            headers=headers,
            json={"restaurant_id": restaurant_id, "fulfillment_type": kind, "fulfillment_details": details},
        )
        if response.status_code != 201:
            result["error"] = response.text[:100]
            return result

        order = response.json()
        cart = (await client.get(f"{API_BASE_URL}/api/cart", headers=headers)).json()
        if cart["items"]:
            result["error"] = f"cart not cleared after order #{order['id']}"

        result.update(
            success="error" not in result,
            order_id=order["id"],
            total=Decimal(order["total_amount"]),
            fulfillment=kind,
        )
    except (httpx.HTTPError, KeyError, ValueError) as e:
        result["error"] = str(e)[:100]
    finally:
        result["time"] = round(time.time() - start_time, 3)
    return result


# =============================================================================
# STATUS RACE
# =============================================================================

async def race_status_update(
    client: httpx.AsyncClient,
    order_id: int,
    racers: int,
    admin_email: str,
    admin_password: str,
) -> dict[str, int]:
    """Many admins try PENDING -> CONFIRMED at once; exactly one may win."""
    response = await client.post(
        f"{API_BASE_URL}/api/auth/signin",
        json={"email": admin_email, "password": admin_password},
    )
    response.raise_for_status()
    headers = auth_header(response.json()["token"])

    responses = await asyncio.gather(
        *[
            client.patch(
                f"{API_BASE_URL}/api/admin/orders/{order_id}/status",
                headers=headers,
                json={"status": "CONFIRMED"},
            )
            for _ in range(racers)
        ]
    )
    outcome: dict[str, int] = {}
    for r in responses:
        outcome[str(r.status_code)] = outcome.get(str(r.status_code), 0) + 1
    return outcome


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    restaurant_id: int,
    num_customers: int,
    racers: int,
    admin_email: str = ADMIN_EMAIL,
    admin_password: str = ADMIN_PASSWORD,
) -> dict[str, Any]:
    print("=" * 70)
    print("CONCURRENCY SIMULATION")
    print("=" * 70)
    print(f"Customers: {num_customers}")
    print(f"Target: {API_BASE_URL}")
    print(f"Restaurant: #{restaurant_id}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(timeout=30.0) as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"\nHealth: {health.json().get('status')}")

        products = (
            await client.get(
                f"{API_BASE_URL}/api/restaurants/{restaurant_id}/products",
                params={"is_active": "true"},
            )
        ).json()
        tables = (await client.get(f"{API_BASE_URL}/api/restaurants/{restaurant_id}/tables")).json()
        if not products:
            print(f"Restaurant #{restaurant_id} has no active products")
            return {"successful": 0, "failed": num_customers}

        start_time = time.time()
        results = await asyncio.gather(
            *[run_customer(client, i + 1, restaurant_id, products, tables) for i in range(num_customers)]
        )
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("\n" + "=" * 70)
        print("SIMULATION RESULTS")
        print("=" * 70)
        print(f"\nSuccessful checkouts: {len(successful)}/{num_customers}")
        print(f"Failed: {len(failed)}/{num_customers}")
        print(f"Total Time: {total_time}s")

        if successful:
            times = [r["time"] for r in successful]
            revenue = sum((r["total"] for r in successful), Decimal("0"))
            print("\nPerformance Metrics:")
            print(f"   Average flow: {round(sum(times) / len(times), 3)}s")
            print(f"   Fastest: {min(times)}s")
            print(f"   Slowest: {max(times)}s")
            print(f"   Order value: ${revenue}")
            for kind in ("DELIVERY", "PICKUP", "DINE_IN"):
                print(f"   {kind}: {sum(1 for r in successful if r['fulfillment'] == kind)}")

        if failed:
            print("\nFailed Details (showing first 5):")
            for f in failed[:5]:
                print(f"   Customer #{f['customer']}: {f.get('error', 'Unknown error')}")

        race: Optional[dict[str, int]] = None
        if successful and racers > 1:
            order_id = successful[0]["order_id"]
            race = await race_status_update(client, order_id, racers, admin_email, admin_password)
            winners = race.get("200", 0)
            verdict = "OK" if winners == 1 else "UNEXPECTED"
            print(f"\nStatus race on order #{order_id} ({racers} racers): {race} -> {verdict}")

    print("=" * 70)
    return {
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "race": race,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrency Simulation Script")
    parser.add_argument("--restaurant", type=int, default=1, help="Restaurant ID to order from")
    parser.add_argument("--customers", type=int, default=TOTAL_CUSTOMERS, help="Concurrent customers")
    parser.add_argument("--racers", type=int, default=10, help="Concurrent status updates (0 to skip)")
    parser.add_argument("--admin-email", default=ADMIN_EMAIL)
    parser.add_argument("--admin-password", default=ADMIN_PASSWORD)
    args = parser.parse_args()

    summary = asyncio.run(
        run_simulation(args.restaurant, args.customers, args.racers, args.admin_email, args.admin_password)
    )
    sys.exit(0 if summary["failed"] == 0 else 1)

"""
Dinner Rush Simulation Script

Fires concurrent orders and waiter calls from many tables at a running
server, then works through them the way staff would. Keep the staff
dashboard open while it runs to watch the live views.

Run from project root: python scripts/simulate.py
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8000"
TOTAL_ORDERS = 40
TOTAL_CALLS = 15
TABLES = [str(n) for n in range(1, 9)]


def generate_random_items(products: list[dict]) -> list[dict[str, Any]]:
    """Pick 1-4 distinct menu items with small quantities."""
    picks = random.sample(products, k=min(len(products), random.randint(1, 4)))
    return [{"product_id": p["id"], "quantity": random.randint(1, 3)} for p in picks]


# =============================================================================
# GUEST TRAFFIC
# =============================================================================

async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    products: list[dict],
) -> dict[str, Any]:
    """Place an order from a random table."""
    table_id = random.choice(TABLES)
    payload = {"table_id": table_id, "items": generate_random_items(products)}
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            order = response.json()["order"]
            return {
                "num": order_num,
                "success": True,
                "id": order["id"],
                "total": order["total"],
                "time": elapsed,
                "kind": "order",
            }
        return {
            "num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
            "kind": "order",
        }
    except httpx.HTTPError as e:
        return {
            "num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "kind": "order",
        }


async def send_waiter_call(client: httpx.AsyncClient, call_num: int) -> dict[str, Any]:
    """Call a waiter to a random table."""
    table_id = random.choice(TABLES)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/tables/{table_id}/waiter-calls", timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            return {
                "num": call_num,
                "success": True,
                "id": response.json()["call"]["id"],
                "time": elapsed,
                "kind": "call",
            }
        return {
            "num": call_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
            "kind": "call",
        }
    except httpx.HTTPError as e:
        return {
            "num": call_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "kind": "call",
        }


# =============================================================================
# STAFF ACTIONS
# =============================================================================

async def work_orders(client: httpx.AsyncClient, orders: list[dict]) -> None:
    """Move orders through the kitchen and mark most of them paid."""
    for order in orders:
        outcome = random.random()
        if outcome < 0.1:
            steps = ["cancelled"]
        elif outcome < 0.3:
            steps = ["preparing"]
        else:
            steps = ["preparing", "completed"]

        for status in steps:
            await client.patch(
                f"{API_BASE_URL}/api/orders/{order['id']}/status", json={"status": status}
            )
        if steps[-1] == "completed":
            await client.patch(
                f"{API_BASE_URL}/api/orders/{order['id']}/payment-status",
                json={"payment_status": "paid"},
            )


async def answer_calls(client: httpx.AsyncClient, calls: list[dict]) -> None:
    for call in calls:
        await asyncio.sleep(random.uniform(0.1, 0.5))
        await client.patch(
            f"{API_BASE_URL}/api/waiter-calls/{call['id']}/status", json={"status": "completed"}
        )


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    num_calls: int = TOTAL_CALLS,
    work: bool = True,
    export: bool = False,
) -> dict[str, Any]:
    print("=" * 70)
    print("🍜 DINNER RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Orders: {num_orders}   🔔 Waiter calls: {num_calls}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/api/products")
        response.raise_for_status()
        products = response.json()
        if not products:
            print("\n❌ The menu is empty. Seed it first: python -m resto.seed")
            return {"total": 0, "successful": 0, "failed": 0}

        print(f"\n🚀 Firing guest traffic against a menu of {len(products)} items...\n")
        tasks = [send_order(client, i + 1, products) for i in range(num_orders)]
        tasks += [send_waiter_call(client, i + 1) for i in range(num_calls)]
        results = await asyncio.gather(*tasks)

        orders = [r for r in results if r["success"] and r["kind"] == "order"]
        calls = [r for r in results if r["success"] and r["kind"] == "call"]

        if work:
            print("👩‍🍳 Staff working through orders and calls...\n")
            await asyncio.gather(work_orders(client, orders), answer_calls(client, calls))

        if export:
            response = await client.post(f"{API_BASE_URL}/api/exports/orders")
            if response.status_code == 202:
                print(f"📤 Export queued: task {response.json().get('task_id')}")
            else:
                print(f"⚠️ Export not queued: {response.text[:100]}")

    total_time = round(time.time() - start_time, 2)
    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Orders placed: {len(orders)}/{num_orders}")
    print(f"✅ Waiter calls: {len(calls)}/{num_calls}")
    print(f"❌ Failed requests: {len(failed)}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        times = [r["time"] for r in successful]
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")
        print(f"   💰 Ordered value: ${sum(r['total'] for r in orders):.2f}")

    if failed:
        print(f"\n⚠️  Failed Request Details (showing first 5):")
        for f in failed[:5]:
            print(f"   {f['kind']} #{f['num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print(f"Open {API_BASE_URL}/admin to see the results")
    print("=" * 70)

    return {
        "total": len(results),
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dinner Rush Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--calls", type=int, default=TOTAL_CALLS, help="Number of waiter calls")
    parser.add_argument("--no-work", action="store_true", help="Leave everything pending")
    parser.add_argument("--export", action="store_true", help="Queue a spreadsheet export at the end")
    parser.add_argument("--base-url", default=API_BASE_URL, help="Server URL")
    args = parser.parse_args()

    API_BASE_URL = args.base_url.rstrip("/")
    asyncio.run(run_simulation(args.orders, args.calls, work=not args.no_work, export=args.export))

#!/usr/bin/env python3
"""
Demo seed script — populates a running API with sample customers.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords and fake identity
documents. It is intended ONLY for local demos and frontend development.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database and uploads, then restart the server:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Each demo user signs up from its own simulated device (a distinct
User-Agent). Sessions are capped per device, so signing everyone up
from one client would leave only the last user logged in.

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┐
    │ Email                        │ Password          │
    ├──────────────────────────────┼───────────────────┤
    │ asha.rao@example.com         │ AshaDemo123!      │
    │ vikram.singh@example.com     │ VikramDemo123!    │
    └──────────────────────────────┴───────────────────┘
"""

import argparse
import asyncio
import os
import shutil

import httpx

# ---------------------------------------------------------------------------
# Demo users and their customers
# ---------------------------------------------------------------------------

USERS = [
    {
        "name": "Asha Rao",
        "email": "asha.rao@example.com",
        "password": "AshaDemo123!",
        "customers": [
            {
                "name": "Ravi Kumar", "email": "ravi.kumar@example.com", "number": "9876543210",
                "street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka",
                "pin_code": "560001", "country": "India",
                "document_type": "AADHAR", "card_number": "234567890123",
            },
            {
                "name": "Meera Iyer", "email": "meera.iyer@example.com", "number": "9845012345",
                "street": "4 Marine Drive", "city": "Mumbai", "state": "Maharashtra",
                "pin_code": "400020", "country": "India",
                "document_type": "PAN", "card_number": "ABCPI1234K",
            },
        ],
    },
    {
        "name": "Vikram Singh",
        "email": "vikram.singh@example.com",
        "password": "VikramDemo123!",
        "customers": [
            {
                "name": "Kabir Mehta", "email": "kabir.mehta@example.com", "number": "9811198111",
                "street": "7 Connaught Place", "city": "New Delhi", "state": "Delhi",
                "pin_code": "110001", "country": "India",
                "document_type": "PASSPORT", "card_number": "K8123456",
            },
            {
                "name": "Anjali Nair", "email": "anjali.nair@example.com", "number": "9447094470",
                "street": "22 Beach Road", "city": "Kochi", "state": "Kerala",
                "pin_code": "682001", "country": "India",
                "document_type": "LICENCE", "card_number": "KL07-2015-0004567",
            },
        ],
    },
]

# A minimal, valid one-page PDF
PLACEHOLDER_PDF = (
    b"%PDF-1.4\n1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 200 120]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n%%EOF\n"
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


async def signup_or_login(client: httpx.AsyncClient, user: dict) -> str:
    """Sign up a user (or log in if they already exist), return the token."""
    resp = await client.post("/auth/signup", json={
        "name": user["name"],
        "email": user["email"],
        "password": user["password"],
    })
    if resp.status_code == 409:
        resp = await client.post("/auth/login", json={
            "email": user["email"],
            "password": user["password"],
        })
    resp.raise_for_status()
    return resp.json()["token"]


async def create_customer(client: httpx.AsyncClient, customer: dict) -> dict:
    slug = customer["document_type"].lower()
    resp = await client.post(
        "/customers",
        data=customer,
        files={"document": (f"{slug}_scan.pdf", PLACEHOLDER_PDF, "application/pdf")},
    )
    return resp.json()


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed(base_url: str) -> None:
    print(f"\nSeeding {base_url} ...")

    for index, user in enumerate(USERS):
        headers = {"User-Agent": f"customer-vault-demo/{index}"}
        async with httpx.AsyncClient(base_url=base_url, headers=headers) as client:
            token = await signup_or_login(client, user)
            client.headers["Authorization"] = f"Bearer {token}"
            print(f"\n{user['name']} ({user['email']})")

            for customer in user["customers"]:
                result = await create_customer(client, customer)
                if "error_type" in result:
                    log(f"skipped {customer['name']}: {result['detail']}")
                else:
                    document = result["documents"][0]
                    log(f"{result['name']}: {document['type']} {document['card_number']}")

    # --- Summary ---
    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password'}")
    print(f"  {'─' * 30} {'─' * 20}")
    for user in USERS:
        print(f"  {user['email']:<30s} {user['password']}")
    print()


def reset_local_data() -> None:
    """Delete the SQLite database and uploaded files so the server starts empty."""
    root = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))
    db_path = os.path.join(root, "data", "vault.db")
    upload_dir = os.path.join(root, "uploads")

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
    else:
        print(f"\n  No database found at {db_path}")

    if os.path.isdir(upload_dir):
        shutil.rmtree(upload_dir)
        print(f"  Deleted {upload_dir}")

    print("  Restart the server to recreate empty tables.\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample users and customers with identity documents.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database and uploads, then exit (restart server to recreate)",
    )
    args = parser.parse_args()

    if args.reset:
        reset_local_data()
        return

    await seed(args.base_url)


if __name__ == "__main__":
    asyncio.run(main())

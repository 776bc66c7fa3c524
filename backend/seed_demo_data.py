"""
Demo Data Seeder for the Policy Service

Creates demo policies for two tenants through the HTTP API, updates one,
soft-deletes another and prints a rules mapping.

Run this script against a running backend to populate it for showcasing.
"""
import requests

# API Configuration
API_URL = "http://localhost:3000"

DEMO_POLICIES = [
    {
        "policy": {
            "PolicyId": "billing-access",
            "version": "1.0",
            "tenantId": "acme",
            "location": "us-east-1",
            "rules": {
                "read-invoices": {"id": "1", "action": "ALLOW", "resource": "invoices/*", "conditions": "business_hours"},
                "export-invoices": {"id": "2", "action": "ALLOW", "resource": "invoices/export", "conditions": "mfa"},
                "delete-invoices": {"id": "3", "action": "DENY", "resource": "invoices/*", "conditions": "always"},
            },
            "assignments": {
                "groups": {"finance": ["1", "2"], "support": ["1", "3"]},
                "users": {"alice": ["2"], "bob": ["3", "42"]},
            },
        }
    },
    {
        "policy": {
            "PolicyId": "ops-console",
            "version": "1.0",
            "tenantId": "acme",
            "location": "eu-west-1",
            "rules": {
                "restart": {"id": "restart", "action": "ALLOW", "resource": "services/*", "conditions": "on_call"},
            },
            "assignments": {"groups": {"sre": ["restart"]}, "users": {}},
        }
    },
    {
        "policy": {
            "PolicyId": "legacy-reports",
            "version": "0.9",
            "tenantId": "globex",
            "location": "us-west-2",
            "rules": {
                "reports": {"id": "r1", "action": "ALLOW", "resource": "reports/*", "conditions": "read_only"},
            },
            "assignments": {"groups": {}, "users": {"carol": ["r1"]}},
        }
    },
]


def seed_demo_data():
    """Seed policies and exercise the lifecycle"""
    print("Seeding demo policies...")

    for document in DEMO_POLICIES:
        policy_id = document["policy"]["PolicyId"]
        response = requests.post(f"{API_URL}/api/policies", json=document, timeout=10)
        if response.status_code == 201:
            print(f"[+] Created policy {policy_id}")
        elif response.status_code == 409:
            print(f"[=] Policy {policy_id} already exists")
        else:
            print(f"[!] Failed to create {policy_id}: {response.status_code} {response.text}")

    response = requests.put(
        f"{API_URL}/api/policies/ops-console",
        json={"policy": {"version": "1.1"}},
        timeout=10,
    )
    print(f"[+] Updated ops-console: {response.status_code}")

    response = requests.delete(f"{API_URL}/api/policies/legacy-reports", timeout=10)
    print(f"[+] Soft-deleted legacy-reports: {response.status_code}")

    response = requests.get(f"{API_URL}/api/policies/billing-access/rules-mapping", timeout=10)
    mapping = response.json().get("data", {}).get("rulesToUsersAndGroups", {})

    print("\n" + "=" * 50)
    print("Demo data seeding complete!")
    print("Rules mapping for billing-access:")
    for rule_id, principals in mapping.items():
        print(f"  rule {rule_id}: groups={principals['groups']} users={principals['users']}")


if __name__ == "__main__":
    try:
        seed_demo_data()
    except requests.RequestException as e:
        print(f"\n[-] Error during seeding: {e}")
        print(f"Make sure the backend is running on {API_URL}")

import os

from locust import HttpUser, between, task

LAB_ID = int(os.getenv("BENCH_LAB_ID", "1"))


class LabManager(HttpUser):
    """Expects BENCH_EMAIL to belong to a Lab Manager of BENCH_LAB_ID."""

    wait_time = between(1, 3)

    def on_start(self):
        payload = {
            "email": os.getenv("BENCH_EMAIL", "load@lab.com"),
            "password": os.getenv("BENCH_PASSWORD", "password"),
        }
        r = self.client.post("/api/auth/login", json=payload)
        token = r.json().get("access_token")
        self.headers = {"Authorization": f"Bearer {token}"}

    @task(3)
    def list_inventory(self):
        self.client.get(f"/api/lab/{LAB_ID}/inventory", headers=self.headers)

    @task(2)
    def page_logs(self):
        self.client.get(
            f"/api/lab/{LAB_ID}/inventory-logs",
            params={"limit": 50},
            headers=self.headers,
            name="/api/lab/[id]/inventory-logs",
        )

    @task(1)
    def low_stock(self):
        self.client.get(f"/api/lab/{LAB_ID}/inventory/low-stock", headers=self.headers)

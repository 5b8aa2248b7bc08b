"""
Locust Load Test Suite

Tokens are minted locally with the same SECRET_KEY the API verifies, so
start the API and locust with the same environment.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many users, one 10-spot group booking
  locust -f locustfile.py --tags slots        # Everyone books the same studio slot
  locust -f locustfile.py --tags throughput   # Cached listing of open group bookings
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from datetime import datetime, timedelta, timezone

from locust import HttpUser, between, events, tag, task

from arts_booking.core.security import create_access_token

ORGANIZATION_ID = "load-org"
GROUP_BOOKING_ID = None
SLOT_START = (datetime.now(timezone.utc) + timedelta(days=30)).replace(hour=10, minute=0, second=0, microsecond=0)


def auth_headers(user_id: str) -> dict:
    token = create_access_token(
        {"sub": user_id, "email": f"{user_id}@load.example.com", "name": user_id},
        expires_delta=timedelta(hours=2),
    )
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: group booking is created by the first concurrency user")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 spots, waitlist on

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify the ledger:
      SELECT capacity, current_participants, available_spots FROM bookings WHERE id = X;
      SELECT COUNT(*) FROM group_booking_participants WHERE booking_id = X AND status = 'confirmed';
    current_participants must equal the count and never exceed 10.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = f"load-{uuid.uuid4().hex[:10]}"
        self.headers = auth_headers(self.user_id)

        if not GROUP_BOOKING_ID:
            resp = self.client.post(
                "/api/group-bookings",
                json={
                    "organization_id": ORGANIZATION_ID,
                    "resource_id": "load-studio",
                    "title": "Concurrency Test Workshop",
                    "start_time": (SLOT_START + timedelta(days=1)).isoformat(),
                    "end_time": (SLOT_START + timedelta(days=1, hours=2)).isoformat(),
                    "capacity": 10,
                    "waitlist_enabled": True,
                },
                headers=self.headers,
            )
            if resp.status_code == 201:
                globals()["GROUP_BOOKING_ID"] = resp.json()["booking_id"]
                print(f"\n✓ Created group booking {GROUP_BOOKING_ID} with 10 spots\n")

    @tag("concurrency")
    @task(3)
    def join(self):
        """All users fight for the same 10 spots; the rest queue on the waitlist."""
        if not GROUP_BOOKING_ID:
            return

        with self.client.post(
            f"/api/group-bookings/{GROUP_BOOKING_ID}/participants",
            headers=self.headers,
            name="/api/group-bookings/{id}/participants",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # joined, waitlisted, or already in
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(1)
    def leave(self):
        """Leaving frees a spot and promotes the head of the waitlist."""
        if not GROUP_BOOKING_ID:
            return

        with self.client.delete(
            f"/api/group-bookings/{GROUP_BOOKING_ID}/participants/me",
            headers=self.headers,
            name="/api/group-bookings/{id}/participants/me",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 404):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class SlotRaceUser(HttpUser):
    """
    TEST 2: Double booking - every user books the same studio slot

    Run: locust -f locustfile.py --tags slots -u 50 -r 50 --run-time 20s

    After test, verify:
      SELECT COUNT(*) FROM bookings WHERE resource_id = 'race-studio' AND status = 'confirmed';
    Should be exactly 1.
    """
    wait_time = between(0, 0.05)

    def on_start(self):
        self.headers = auth_headers(f"artist-{uuid.uuid4().hex[:10]}")

    @tag("slots")
    @task
    def book_same_slot(self):
        with self.client.post(
            "/api/bookings",
            json={
                "org_id": ORGANIZATION_ID,
                "resource_id": "race-studio",
                "start_time": SLOT_START.isoformat(),
                "end_time": (SLOT_START + timedelta(hours=1)).isoformat(),
                "artist_name": "Load Artist",
                "artist_email": "artist@load.example.com",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: slot already booked
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_open_group_bookings(self):
        offset = random.choice([0, 20, 40])
        self.client.get(
            f"/api/group-bookings?organization_id={ORGANIZATION_ID}&limit=20&offset={offset}",
            name="/api/group-bookings [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def check_availability(self):
        start = SLOT_START + timedelta(hours=random.randint(0, 8))
        self.client.get(
            "/api/availability",
            params={
                "resource_id": "race-studio",
                "start_time": start.isoformat(),
                "end_time": (start + timedelta(hours=1)).isoformat(),
            },
            name="/api/availability",
        )

    @tag("throughput", "read")
    @task(2)
    def list_open_slots(self):
        """Needs a resource row with availability_rules; 404 otherwise."""
        day = SLOT_START.date() + timedelta(days=random.randint(0, 6))
        with self.client.get(
            "/api/availability",
            params={"resource_id": "race-studio", "start_date": day.isoformat(), "end_date": day.isoformat()},
            name="/api/availability [slots]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 404):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = auth_headers(f"edge-{uuid.uuid4().hex[:10]}")

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_group_booking(self):
        with self.client.post(
            f"/api/group-bookings/{uuid.uuid4()}/participants",
            headers=self.headers,
            name="/api/group-bookings/{unknown}/participants",
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def zero_capacity(self):
        with self.client.post(
            "/api/group-bookings",
            json={
                "organization_id": ORGANIZATION_ID,
                "resource_id": "edge-studio",
                "title": "Nobody",
                "start_time": SLOT_START.isoformat(),
                "end_time": (SLOT_START + timedelta(hours=1)).isoformat(),
                "capacity": 0,
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def inverted_time_range(self):
        with self.client.post(
            "/api/bookings",
            json={
                "org_id": ORGANIZATION_ID,
                "resource_id": "edge-studio",
                "start_time": (SLOT_START + timedelta(hours=1)).isoformat(),
                "end_time": SLOT_START.isoformat(),
                "artist_name": "Edge",
                "artist_email": "edge@load.example.com",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def unknown_invitation(self):
        with self.client.post(
            "/api/group-bookings/invitations/not-a-token/respond",
            json={"decision": "accepted"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/bookings",
            data="not json at all",
            headers={**self.headers, "Content-Type": "application/json"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/bookings",
            json={"org_id": ORGANIZATION_ID},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 401))

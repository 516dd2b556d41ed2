"""Tests for dashboard aggregation and the dashboard routes."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.marketplace import Gig, GigService, GigStatus, compute_dashboard, load_dashboard, refresh_dashboard


def gig(gig_id: str, status: str, budget: str, created: datetime) -> Gig:
    return Gig(
        id=gig_id,
        title=f"Gig {gig_id}",
        description="Work",
        status=status,
        poster_id="client-1",
        budget=Decimal(budget),
        deadline=date(2030, 1, 1),
        skills=["SEO"],
        created_at=created,
    )


def at(year: int, month: int, day: int = 1) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestComputeDashboard:
    def test_counts_and_budget(self):
        gigs = [
            gig("g1", "open", "100", at(2026, 1)),
            gig("g2", "assigned", "200", at(2026, 2)),
            gig("g3", "in-progress", "300", at(2026, 3)),
            gig("g4", "in-review", "50", at(2026, 3)),
            gig("g5", "completed", "400", at(2026, 4)),
            gig("g6", "completed", "250.50", at(2026, 4, 15)),
        ]

        summary = compute_dashboard("client-1", "client", gigs)

        assert summary.total == 6
        assert summary.open == 1
        assert summary.active == 2
        assert summary.completed == 2
        assert summary.completed_budget == Decimal("650.50")
        assert summary.source_version == at(2026, 4, 15)
        assert summary.status_counts == {
            "open": 1,
            "assigned": 1,
            "in-progress": 1,
            "in-review": 1,
            "completed": 2,
        }
        assert [(b.name, b.count) for b in summary.distribution] == [
            ("Open", 1),
            ("In Progress", 1),
            ("Completed", 2),
        ]

    def test_histogram_covers_first_half_and_ignores_year(self):
        gigs = [
            gig("g1", "completed", "100", at(2025, 1)),
            gig("g2", "completed", "40", at(2026, 1)),
            gig("g3", "completed", "70", at(2026, 6, 30)),
            gig("g4", "completed", "999", at(2026, 7)),
            gig("g5", "completed", "999", at(2026, 12)),
            gig("g6", "open", "500", at(2026, 2)),
        ]

        summary = compute_dashboard("client-1", "client", gigs)

        months = {b.month: b.amount for b in summary.monthly_completed_budget}
        assert list(months) == ["Jan", "Feb", "Mar", "Apr", "May", "Jun"]
        assert months["Jan"] == Decimal("140")
        assert months["Feb"] == Decimal("0")
        assert months["Jun"] == Decimal("70")
        # July onwards still counts toward the total
        assert summary.completed_budget == Decimal("2208")

    def test_recent_gigs_newest_first_capped_at_five(self):
        gigs = [gig(f"g{m}", "open", "10", at(2026, m)) for m in range(1, 8)]

        summary = compute_dashboard("client-1", "client", gigs)

        assert summary.recent_gig_ids == ["g7", "g6", "g5", "g4", "g3"]

    def test_empty(self):
        summary = compute_dashboard("f1", "freelancer", [], rating=4.5)

        assert summary.total == 0
        assert summary.completed_budget == Decimal("0")
        assert summary.recent_gig_ids == []
        assert summary.rating == 4.5


class TestStoredSummaries:
    @pytest.mark.asyncio
    async def test_load_computes_then_reads_stored_row(self, fake_db, make_user, make_gig):
        client = make_user(fake_db, role="job_poster")
        make_gig(fake_db, client, status="completed", budget=300.0)

        first = await load_dashboard(fake_db, client["id"], "client")
        assert first.completed == 1
        stored = fake_db.rows("dashboard_summaries", user_id=client["id"], perspective="client")
        assert len(stored) == 1

        reads_before = len(fake_db.calls)
        again = await load_dashboard(fake_db, client["id"], "client")
        assert again.completed == 1
        # Served from the stored row
        assert ("dashboard_summaries", "update") not in fake_db.calls[reads_before:]

        # Written behind the service's back, after the stored summary was built
        later = datetime.now(timezone.utc) + timedelta(minutes=1)
        make_gig(fake_db, client, status="completed", budget=200.0, created_at=later.isoformat())

        current = await load_dashboard(fake_db, client["id"], "client")
        assert current.completed == 2
        assert current.completed_budget == Decimal("500")
        assert len(fake_db.rows("dashboard_summaries", user_id=client["id"])) == 1

    @pytest.fixture
    def two_active_gigs(self, fake_db, make_user, make_gig):
        client = make_user(fake_db, role="job_poster")
        freelancer = make_user(fake_db)
        a = make_gig(fake_db, client, status="in-progress", assigned_to=freelancer["id"])
        b = make_gig(fake_db, client, status="in-progress", assigned_to=freelancer["id"])
        return client, a, b

    @staticmethod
    def complete_elsewhere(db, gig_id):
        """Another request completes a gig after this one listed its gigs."""
        later = datetime.now(timezone.utc) + timedelta(minutes=1)
        row = db.row("gigs", gig_id)
        row["status"] = "completed"
        row["updated_at"] = later.isoformat()

    @pytest.mark.asyncio
    async def test_refresh_from_older_read_keeps_newer_summary(self, fake_db, two_active_gigs, auth_for, settings):
        client, a, b = two_active_gigs

        def concurrent_transition(query):
            if query.table == "dashboard_summaries" and query.op in ("update", "insert"):
                fake_db.hooks.remove(concurrent_transition)
                self.complete_elsewhere(fake_db, b["id"])
                fresh = compute_dashboard(
                    client["id"], "client", [Gig(**r) for r in fake_db.rows("gigs", poster_id=client["id"])]
                )
                fake_db.add_row(
                    "dashboard_summaries",
                    {
                        "user_id": client["id"],
                        "perspective": "client",
                        "summary": fresh.model_dump(mode="json"),
                        "source_version": fresh.source_version.isoformat(),
                    },
                )

        fake_db.hooks.append(concurrent_transition)

        await GigService.override_status(fake_db, auth_for(client), a["id"], GigStatus.completed, settings)

        [stored] = fake_db.rows("dashboard_summaries", user_id=client["id"], perspective="client")
        assert stored["summary"]["completed"] == 2
        summary = await load_dashboard(fake_db, client["id"], "client")
        assert summary.completed == 2

    @pytest.mark.asyncio
    async def test_stale_summary_recomputed_on_read(self, fake_db, two_active_gigs, auth_for, settings):
        client, a, b = two_active_gigs

        def concurrent_commit(query):
            if query.table == "dashboard_summaries" and query.op in ("update", "insert"):
                fake_db.hooks.remove(concurrent_commit)
                self.complete_elsewhere(fake_db, b["id"])

        fake_db.hooks.append(concurrent_commit)

        await GigService.override_status(fake_db, auth_for(client), a["id"], GigStatus.completed, settings)

        [stored] = fake_db.rows("dashboard_summaries", user_id=client["id"], perspective="client")
        assert stored["summary"]["completed"] == 1

        summary = await load_dashboard(fake_db, client["id"], "client")

        assert summary.completed == 2
        [stored] = fake_db.rows("dashboard_summaries", user_id=client["id"], perspective="client")
        assert stored["summary"]["completed"] == 2

    @pytest.mark.asyncio
    async def test_freelancer_summary_uses_assigned_gigs_and_rating(self, fake_db, make_user, make_gig):
        client = make_user(fake_db, role="job_poster")
        freelancer = make_user(fake_db, rating=4.8)
        make_gig(fake_db, client, status="in-progress", assigned_to=freelancer["id"])
        make_gig(fake_db, client)

        summary = await refresh_dashboard(fake_db, freelancer["id"], "freelancer")

        assert summary.total == 1
        assert summary.active == 1
        assert summary.rating == 4.8


class TestDashboardRoutes:
    def test_client_dashboard(self, client, fake_db, make_user, make_gig, headers_for):
        poster = make_user(fake_db, role="job_poster")
        make_gig(fake_db, poster, title="Done", status="completed", budget=120.0)
        make_gig(fake_db, poster, title="Waiting")

        response = client.get("/dashboard/client", headers=headers_for(poster))

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["perspective"] == "client"
        assert data["summary"]["total"] == 2
        assert data["summary"]["open"] == 1
        assert Decimal(data["summary"]["completed_budget"]) == Decimal("120")
        assert {g["title"] for g in data["recent_gigs"]} == {"Done", "Waiting"}

    def test_freelancer_dashboard(self, client, fake_db, make_user, make_gig, headers_for):
        poster = make_user(fake_db, role="job_poster")
        freelancer = make_user(fake_db, rating=3.5)
        make_gig(fake_db, poster, status="completed", assigned_to=freelancer["id"], budget=80.0)

        response = client.get("/dashboard/freelancer", headers=headers_for(freelancer))

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["completed"] == 1
        assert summary["rating"] == 3.5

    def test_wrong_role_redirected(self, client, fake_db, make_user, headers_for):
        freelancer = make_user(fake_db)
        poster = make_user(fake_db, role="job_poster")

        as_freelancer = client.get("/dashboard/client", headers=headers_for(freelancer))
        as_poster = client.get("/dashboard/freelancer", headers=headers_for(poster))

        assert as_freelancer.status_code == 403
        assert as_freelancer.headers["X-Redirect-To"] == "/dashboard/freelancer"
        assert as_poster.status_code == 403
        assert as_poster.headers["X-Redirect-To"] == "/dashboard/client"

    def test_landing(self, client, fake_db, make_user, headers_for):
        poster = make_user(fake_db, role="job_poster")

        response = client.get("/dashboard", headers=headers_for(poster))

        assert response.status_code == 200
        assert response.json() == {"role": "job_poster", "landing_path": "/dashboard/client"}

    def test_requires_auth(self, client):
        response = client.get("/dashboard/client")

        assert response.status_code == 401

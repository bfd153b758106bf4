from datetime import datetime, timedelta, timezone

from app.models.billing_models import SeatChangeAction, SeatChangeStatus, SeatPlan, SeatPlanChange
from app.models.profile_models import ProfileRole

ORG_ID = "org-1"
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _plan(make_plan, seat_limit=5):
    return make_plan(seat_limit=seat_limit, anchor=_now() - timedelta(days=10))


def _due_downgrade(db, organization_id=ORG_ID, old_limit=5, new_limit=3) -> SeatPlanChange:
    change = SeatPlanChange(
        organization_id=organization_id,
        action=SeatChangeAction.DOWNGRADE,
        status=SeatChangeStatus.SCHEDULED,
        old_limit=old_limit,
        new_limit=new_limit,
        effective_at=_now() - timedelta(hours=1),
        currency_code="BRL",
        unit_price_cents=5_000,
        change_metadata={},
    )
    db.add(change)
    db.commit()
    return change


class TestGetSeatBilling:
    def test_requires_authentication(self, client):
        resp = client.get("/settings/billing/seats")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthenticated"

    def test_rejects_garbage_token(self, client):
        resp = client.get("/settings/billing/seats", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_owner_sees_plan_usage_and_cycle(self, client, make_plan, make_profile, owner, headers_for):
        _plan(make_plan, seat_limit=5)
        for _ in range(4):
            make_profile(ProfileRole.BROKER)
        make_profile(ProfileRole.ASSISTANT)

        resp = client.get("/settings/billing/seats", headers=headers_for(owner.id))

        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["ok"] is True
        assert body["plan"]["seat_limit"] == 5
        assert body["plan"]["billing_cycle_interval"] == "monthly"
        assert body["usage"] == {"used": 4, "seat_limit": 5, "available": 1}
        assert body["cycle"]["total_days"] >= 28
        assert 0 < body["cycle"]["remaining_days"] <= body["cycle"]["total_days"]
        assert body["pending_change"] is None
        assert body["history"] == []
        assert body["capacity_alert"]["level"] == "warning"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_broker_is_forbidden(self, client, make_plan, make_profile, headers_for):
        _plan(make_plan)
        broker = make_profile(ProfileRole.BROKER)
        resp = client.get("/settings/billing/seats", headers=headers_for(broker.id))
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_unknown_profile_is_forbidden(self, client, make_plan, headers_for):
        _plan(make_plan)
        resp = client.get("/settings/billing/seats", headers=headers_for("no-such-profile"))
        assert resp.status_code == 403

    def test_missing_plan(self, client, owner, headers_for):
        resp = client.get("/settings/billing/seats", headers=headers_for(owner.id))
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"


class TestChangeSeats:
    def test_upgrade(self, client, db_session, make_plan, owner, headers_for):
        _plan(make_plan, seat_limit=5)

        resp = client.post(
            "/settings/billing/seats",
            json={"action": "upgrade", "new_limit": 8, "unit_price_cents": 10_000, "currency_code": "brl"},
            headers=headers_for(owner.id),
        )

        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["mode"] == "upgrade_applied"
        change = body["change"]
        assert change["status"] == "applied"
        assert change["currency_code"] == "BRL"
        assert 0 < change["prorated_amount_cents"] <= 30_000
        assert change["metadata"]["seats_delta"] == 3
        assert body["usage_snapshot"]["seat_limit"] == 8
        db_session.expire_all()
        assert db_session.get(SeatPlan, ORG_ID).seat_limit == 8

    def test_downgrade_is_scheduled(self, client, db_session, make_plan, owner, headers_for):
        _plan(make_plan, seat_limit=5)

        resp = client.post(
            "/settings/billing/seats",
            json={"action": "downgrade", "new_limit": 3, "unit_price_cents": 10_000},
            headers=headers_for(owner.id),
        )

        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["mode"] == "downgrade_scheduled"
        assert body["change"]["status"] == "scheduled"
        assert body["change"]["prorated_amount_cents"] == 0
        db_session.expire_all()
        assert db_session.get(SeatPlan, ORG_ID).seat_limit == 5

        again = client.post(
            "/settings/billing/seats",
            json={"action": "downgrade", "new_limit": 2, "unit_price_cents": 10_000},
            headers=headers_for(owner.id),
        )
        assert again.status_code == 409
        assert again.json()["code"] == "downgrade_already_scheduled"

        upgrade = client.post(
            "/settings/billing/seats",
            json={"action": "upgrade", "new_limit": 9, "unit_price_cents": 10_000},
            headers=headers_for(owner.id),
        )
        assert upgrade.status_code == 409
        assert upgrade.json()["code"] == "downgrade_already_scheduled"
        db_session.expire_all()
        assert db_session.get(SeatPlan, ORG_ID).seat_limit == 5

    def test_downgrade_below_active_brokers(self, client, make_plan, make_profile, owner, headers_for):
        _plan(make_plan, seat_limit=5)
        for _ in range(4):
            make_profile(ProfileRole.BROKER)

        resp = client.post(
            "/settings/billing/seats",
            json={"action": "downgrade", "new_limit": 3},
            headers=headers_for(owner.id),
        )

        assert resp.status_code == 409
        body = resp.json()
        assert body["ok"] is False
        assert body["code"] == "downgrade_below_active_brokers"
        assert body["details"] == {"used": 4, "new_limit": 3}

    def test_inactive_brokers_do_not_count(self, client, make_plan, make_profile, owner, headers_for):
        from app.models.profile_models import ProfileStatus

        _plan(make_plan, seat_limit=5)
        make_profile(ProfileRole.BROKER)
        make_profile(ProfileRole.BROKER, status=ProfileStatus.INACTIVE)
        make_profile(ProfileRole.BROKER, organization_id="org-2")

        resp = client.post(
            "/settings/billing/seats",
            json={"action": "downgrade", "new_limit": 1},
            headers=headers_for(owner.id),
        )
        assert resp.status_code == 200, resp.text

    def test_out_of_range_limit(self, client, make_plan, owner, headers_for):
        _plan(make_plan)
        resp = client.post(
            "/settings/billing/seats",
            json={"action": "upgrade", "new_limit": 2_000_000, "unit_price_cents": 100},
            headers=headers_for(owner.id),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["reason"] == "invalid_seat_limit"

    def test_malformed_body(self, client, make_plan, owner, headers_for):
        _plan(make_plan)
        resp = client.post(
            "/settings/billing/seats",
            json={"action": "upgrade", "new_limit": "8"},
            headers=headers_for(owner.id),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert body["reason"] == "invalid_request"

    def test_unknown_action(self, client, make_plan, owner, headers_for):
        _plan(make_plan)
        resp = client.post(
            "/settings/billing/seats",
            json={"action": "cancel", "new_limit": 3},
            headers=headers_for(owner.id),
        )
        assert resp.status_code == 400


class TestApplyDueJob:
    def test_cron_secret_applies_due_downgrades(self, client, db_session, make_plan):
        _plan(make_plan, seat_limit=5)
        change = _due_downgrade(db_session)

        resp = client.post("/jobs/billing/seats/apply-due", json={}, headers=CRON_HEADERS)

        assert resp.status_code == 200, resp.text
        assert resp.json()["result"] == {"scanned": 1, "applied": 1, "blocked": 0, "failed": 0}
        db_session.expire_all()
        assert db_session.get(SeatPlanChange, change.id).status is SeatChangeStatus.APPLIED
        assert db_session.get(SeatPlan, ORG_ID).seat_limit == 3

    def test_requires_credentials(self, client):
        resp = client.post("/jobs/billing/seats/apply-due")
        assert resp.status_code == 401

    def test_wrong_secret(self, client):
        resp = client.post("/jobs/billing/seats/apply-due", headers={"Authorization": "Bearer wrong"})
        assert resp.status_code == 401

    def test_owner_runs_for_own_organization_only(self, client, db_session, make_plan, owner, headers_for):
        _plan(make_plan, seat_limit=5)
        make_plan(organization_id="org-2", seat_limit=9, anchor=_now() - timedelta(days=10))
        _due_downgrade(db_session)
        other = _due_downgrade(db_session, organization_id="org-2", old_limit=9, new_limit=4)

        resp = client.post("/jobs/billing/seats/apply-due", headers=headers_for(owner.id))

        assert resp.status_code == 200, resp.text
        assert resp.json()["result"]["applied"] == 1
        db_session.expire_all()
        assert db_session.get(SeatPlanChange, other.id).status is SeatChangeStatus.SCHEDULED

        denied = client.post(
            "/jobs/billing/seats/apply-due",
            json={"organization_id": "org-2"},
            headers=headers_for(owner.id),
        )
        assert denied.status_code == 403

    def test_broker_cannot_run_job(self, client, make_plan, make_profile, headers_for):
        _plan(make_plan)
        broker = make_profile(ProfileRole.BROKER)
        resp = client.post("/jobs/billing/seats/apply-due", headers=headers_for(broker.id))
        assert resp.status_code == 403

    def test_role_denials_match_across_endpoints(self, client, monkeypatch, make_plan, make_profile, headers_for):
        from app.services.seat_billing import service as service_module

        denied = []
        monkeypatch.setattr(
            service_module, "log_denied", lambda action, **kwargs: denied.append((action, kwargs["reason"], kwargs["role"]))
        )
        _plan(make_plan)
        broker = make_profile(ProfileRole.BROKER)

        job = client.post("/jobs/billing/seats/apply-due", headers=headers_for(broker.id))
        change = client.post(
            "/settings/billing/seats",
            json={"action": "upgrade", "new_limit": 9, "unit_price_cents": 100},
            headers=headers_for(broker.id),
        )

        assert job.status_code == change.status_code == 403
        assert job.json() == change.json()
        assert denied == [
            ("billing.seats.apply_due", "role", "broker"),
            ("billing.seats.change", "role", "broker"),
        ]

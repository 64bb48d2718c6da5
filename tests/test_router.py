"""HTTP API tests — auth, problem+json errors and an end-to-end request flow."""

from __future__ import annotations

import uuid
from decimal import Decimal

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import UserRole
from tests.conftest import (
    _seed_balance,
    _seed_employee,
    _seed_leave_type,
    _seed_role,
    auth_header,
    create_access_token,
)

BASE = "/api/v1/leave"


async def _setup(db: AsyncSession):
    manager = await _seed_employee(db, first_name="Mira")
    emp = await _seed_employee(db, reporting_manager_id=manager.id)
    lt = await _seed_leave_type(db)
    await _seed_balance(db, emp.id, lt.id, entitlement=Decimal("10"), accrued=Decimal("10"))
    return manager.id, emp.id, lt.id


# ═════════════════════════════════════════════════════════════════════
# 1. System / auth
# ═════════════════════════════════════════════════════════════════════


class TestAuth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{BASE}/types")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        token = create_access_token(emp.id, expired=True)
        resp = await client.get(f"{BASE}/types", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_inactive_employee(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db, is_active=False)
        resp = await client.get(f"{BASE}/types", headers=auth_header(emp.id))
        assert resp.status_code == 401

    async def test_list_types(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_leave_type(db)
        await _seed_leave_type(db, code="old", name="Retired Type", is_active=False)

        resp = await client.get(f"{BASE}/types", headers=auth_header(emp.id))
        assert resp.status_code == 200
        assert [t["code"] for t in resp.json()] == ["pto"]


# ═════════════════════════════════════════════════════════════════════
# 2. Problem details
# ═════════════════════════════════════════════════════════════════════


class TestProblemDetails:

    async def test_insufficient_balance_422(self, client: AsyncClient, db: AsyncSession):
        _, emp_id, lt_id = await _setup(db)

        resp = await client.post(
            f"{BASE}/requests",
            json={"leave_type_id": str(lt_id), "start_date": "2026-03-02", "end_date": "2026-03-16"},
            headers=auth_header(emp_id),
        )

        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/insufficient-balance")
        assert body["errors"]["requested"] == ["11"]

    async def test_overlap_409(self, client: AsyncClient, db: AsyncSession):
        _, emp_id, lt_id = await _setup(db)
        headers = auth_header(emp_id)
        first = await client.post(
            f"{BASE}/requests",
            json={"leave_type_id": str(lt_id), "start_date": "2026-02-10", "end_date": "2026-02-12"},
            headers=headers,
        )
        assert first.status_code == 201

        resp = await client.post(
            f"{BASE}/requests",
            json={"leave_type_id": str(lt_id), "start_date": "2026-02-11", "end_date": "2026-02-13"},
            headers=headers,
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["type"].endswith("/overlapping-request")
        assert body["errors"]["conflicting_request_id"] == [first.json()["id"]]

    async def test_inverted_range_422(self, client: AsyncClient, db: AsyncSession):
        _, emp_id, lt_id = await _setup(db)
        resp = await client.post(
            f"{BASE}/requests",
            json={"leave_type_id": str(lt_id), "start_date": "2026-03-04", "end_date": "2026-03-02"},
            headers=auth_header(emp_id),
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/invalid-range")

    async def test_unknown_request_404(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        resp = await client.get(f"{BASE}/requests/{uuid.uuid4()}", headers=auth_header(emp.id))
        assert resp.status_code == 404
        assert resp.json()["type"].endswith("/not-found")

    async def test_missing_balance_404(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db)
        resp = await client.get(
            f"{BASE}/balance",
            params={"leave_type_id": str(lt.id), "year": 2026},
            headers=auth_header(emp.id),
        )
        assert resp.status_code == 404

    async def test_body_validation_422(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        resp = await client.post(
            f"{BASE}/requests",
            json={"leave_type_id": "not-a-uuid"},
            headers=auth_header(emp.id),
        )
        assert resp.status_code == 422
        assert "leave_type_id" in resp.json()["errors"]

    async def test_process_requires_hr_token(self, client: AsyncClient, db: AsyncSession):
        emp = await _seed_employee(db)
        resp = await client.put(
            f"{BASE}/requests/{uuid.uuid4()}/process", headers=auth_header(emp.id),
        )
        assert resp.status_code == 403
        assert resp.json()["type"].endswith("/unauthorized")


# ═════════════════════════════════════════════════════════════════════
# 3. End-to-end flow
# ═════════════════════════════════════════════════════════════════════


class TestFlow:

    async def test_file_approve_process(self, client: AsyncClient, db: AsyncSession):
        manager_id, emp_id, lt_id = await _setup(db)
        hr = await _seed_employee(db, first_name="Hana")
        hr_id = hr.id
        await _seed_role(db, hr_id, UserRole.hr_admin)

        quote = await client.post(
            f"{BASE}/quote",
            json={"leave_type_id": str(lt_id), "start_date": "2026-03-02", "end_date": "2026-03-04"},
            headers=auth_header(emp_id),
        )
        assert quote.status_code == 200
        assert Decimal(quote.json()["total_days"]) == Decimal("3")

        created = await client.post(
            f"{BASE}/requests",
            json={
                "leave_type_id": str(lt_id),
                "start_date": "2026-03-02",
                "end_date": "2026-03-04",
                "reason": "Family function",
            },
            headers=auth_header(emp_id),
        )
        assert created.status_code == 201
        request_id = created.json()["id"]
        assert created.json()["status"] == "pending"

        team = await client.get(
            f"{BASE}/requests", params={"scope": "team"}, headers=auth_header(manager_id),
        )
        assert team.status_code == 200
        assert team.json()["meta"]["total"] == 1

        self_approve = await client.put(
            f"{BASE}/requests/{request_id}/approve", headers=auth_header(emp_id),
        )
        assert self_approve.status_code == 403

        approved = await client.put(
            f"{BASE}/requests/{request_id}/approve",
            json={"remarks": "Approved"},
            headers=auth_header(manager_id, UserRole.manager),
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        again = await client.put(
            f"{BASE}/requests/{request_id}/approve", headers=auth_header(manager_id, UserRole.manager),
        )
        assert again.status_code == 409
        assert again.json()["type"].endswith("/invalid-transition")

        balance = await client.get(
            f"{BASE}/balance",
            params={"leave_type_id": str(lt_id), "year": 2026},
            headers=auth_header(emp_id),
        )
        assert balance.status_code == 200
        assert Decimal(balance.json()["used"]) == Decimal("3")
        assert Decimal(balance.json()["pending"]) == Decimal("0")
        assert Decimal(balance.json()["available"]) == Decimal("7")

        processed = await client.put(
            f"{BASE}/requests/{request_id}/process", headers=auth_header(hr_id, UserRole.hr_admin),
        )
        assert processed.status_code == 200
        assert processed.json()["status"] == "processed"

    async def test_draft_submit_cancel(self, client: AsyncClient, db: AsyncSession):
        _, emp_id, lt_id = await _setup(db)
        headers = auth_header(emp_id)

        draft = await client.post(
            f"{BASE}/requests",
            json={
                "leave_type_id": str(lt_id),
                "start_date": "2026-03-02",
                "end_date": "2026-03-03",
                "as_draft": True,
            },
            headers=headers,
        )
        assert draft.status_code == 201
        request_id = draft.json()["id"]

        updated = await client.put(
            f"{BASE}/requests/{request_id}", json={"end_date": "2026-03-04"}, headers=headers,
        )
        assert updated.status_code == 200
        assert Decimal(updated.json()["total_days"]) == Decimal("3")

        submitted = await client.post(f"{BASE}/requests/{request_id}/submit", headers=headers)
        assert submitted.status_code == 200
        assert submitted.json()["status"] == "pending"

        cancelled = await client.put(f"{BASE}/requests/{request_id}/cancel", headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        balances = await client.get(f"{BASE}/balances", params={"year": 2026}, headers=headers)
        assert balances.status_code == 200
        assert Decimal(balances.json()[0]["pending"]) == Decimal("0")

    async def test_hr_adjusts_balance(self, client: AsyncClient, db: AsyncSession):
        _, emp_id, lt_id = await _setup(db)
        hr = await _seed_employee(db)
        hr_id = hr.id
        await _seed_role(db, hr_id, UserRole.hr_admin)

        denied = await client.put(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(emp_id),
                "leave_type_id": str(lt_id),
                "year": 2026,
                "entitlement_delta": 2,
                "accrued_delta": 2,
                "reason": "Long service award",
            },
            headers=auth_header(emp_id),
        )
        assert denied.status_code == 403

        resp = await client.put(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(emp_id),
                "leave_type_id": str(lt_id),
                "year": 2026,
                "entitlement_delta": 2,
                "accrued_delta": 2,
                "reason": "Long service award",
            },
            headers=auth_header(hr_id, UserRole.hr_admin),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["accrued"]) == Decimal("12")
        assert Decimal(resp.json()["available"]) == Decimal("12")

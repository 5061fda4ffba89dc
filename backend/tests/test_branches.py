# Overview: Pytest coverage for store branches (codes, main branch, managers, tenant scoping).

import pytest

from conftest import headers_for
from retailpos.extensions import db
from retailpos.models import Branch
from retailpos.permissions import Role
from retailpos.services import branch_service
from retailpos.services.branch_service import BranchNotFoundError
from retailpos.validation import ConflictError, ValidationError


class TestBranchService:
    def test_codes_are_allocated_per_tenant(self, tenant_a, tenant_b):
        first = branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Centre"})
        second = branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Lac"})
        other = branch_service.create_branch(tenant_id=tenant_b.id, payload={"name": "Sousse"})

        assert [first.code, second.code] == ["BR001", "BR002"]
        assert other.code == "BR001"
        assert first.country == "Tunisia"
        assert first.is_active is True

    def test_explicit_code_is_upper_cased_and_unique(self, tenant_a):
        branch = branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Marsa", "code": "mar-1"})
        assert branch.code == "MAR-1"

        with pytest.raises(ConflictError):
            branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Copy", "code": "MAR-1"})

    def test_allocated_code_skips_taken_code(self, tenant_a):
        branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Manual", "code": "BR001"})
        branch = branch_service.create_branch(tenant_id=tenant_a.id, payload={"name": "Auto"})
        assert branch.code == "BR002"

    def test_only_one_main_branch(self, tenant_a):
        first = branch_service.create_branch(
            tenant_id=tenant_a.id, payload={"name": "Centre", "is_main_branch": True}
        )
        second = branch_service.create_branch(
            tenant_id=tenant_a.id, payload={"name": "Lac", "is_main_branch": True}
        )

        db.session.refresh(first)
        assert first.is_main_branch is False
        assert second.is_main_branch is True

        branch_service.update_branch(tenant_id=tenant_a.id, branch_id=first.id, payload={"is_main_branch": True})
        db.session.refresh(second)
        assert second.is_main_branch is False
        listed = branch_service.list_branches(tenant_id=tenant_a.id)
        assert [b.id for b in listed][0] == first.id

    def test_manager_must_belong_to_tenant(self, tenant_a, admin_a, admin_b):
        branch = branch_service.create_branch(
            tenant_id=tenant_a.id, payload={"name": "Centre", "manager_id": admin_a.id}
        )
        assert branch.to_dict()["manager"]["id"] == admin_a.id

        with pytest.raises(ValidationError):
            branch_service.create_branch(
                tenant_id=tenant_a.id, payload={"name": "Lac", "manager_id": admin_b.id}
            )

    def test_name_required(self, tenant_a):
        with pytest.raises(ValidationError):
            branch_service.create_branch(tenant_id=tenant_a.id, payload={"city": "Tunis"})

    def test_foreign_branch_is_not_found(self, tenant_a, tenant_b):
        branch = branch_service.create_branch(tenant_id=tenant_b.id, payload={"name": "Sousse"})
        with pytest.raises(BranchNotFoundError):
            branch_service.get_branch(tenant_id=tenant_a.id, branch_id=branch.id)
        with pytest.raises(BranchNotFoundError):
            branch_service.delete_branch(tenant_id=tenant_a.id, branch_id=branch.id)
        assert db.session.query(Branch).count() == 1


class TestBranchApi:
    def test_crud(self, client, admin_a):
        headers = headers_for(admin_a)

        resp = client.post(
            "/api/branches",
            json={"name": "Centre Ville", "phone": "+21671000000", "city": "Tunis", "governorate": "Tunis"},
            headers=headers,
        )
        assert resp.status_code == 201, resp.json
        branch = resp.json["branch"]
        assert branch["code"] == "BR001"
        assert branch["address"]["city"] == "Tunis"

        resp = client.put(f"/api/branches/{branch['id']}", json={"is_active": False}, headers=headers)
        assert resp.status_code == 200
        assert resp.json["branch"]["is_active"] is False

        listing = client.get("/api/branches?is_active=false", headers=headers).json
        assert [b["id"] for b in listing["branches"]] == [branch["id"]]

        resp = client.delete(f"/api/branches/{branch['id']}", headers=headers)
        assert resp.status_code == 200
        assert client.get(f"/api/branches/{branch['id']}", headers=headers).status_code == 404

    def test_unknown_field_rejected(self, client, admin_a):
        resp = client.post("/api/branches", json={"name": "X", "tenant_id": 99}, headers=headers_for(admin_a))
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_duplicate_code_conflict(self, client, admin_a):
        headers = headers_for(admin_a)
        client.post("/api/branches", json={"name": "A", "code": "HQ"}, headers=headers)
        resp = client.post("/api/branches", json={"name": "B", "code": "hq"}, headers=headers)
        assert resp.status_code == 409

    def test_cross_tenant_branch_is_404(self, client, admin_a, tenant_b):
        branch = branch_service.create_branch(tenant_id=tenant_b.id, payload={"name": "Sousse"})
        resp = client.put(f"/api/branches/{branch.id}", json={"name": "Mine"}, headers=headers_for(admin_a))
        assert resp.status_code == 404
        db.session.refresh(branch)
        assert branch.name == "Sousse"

    def test_manager_role_cannot_manage_branches(self, client, users):
        resp = client.get("/api/branches", headers=headers_for(users[Role.MANAGER.value]))
        assert resp.status_code == 403

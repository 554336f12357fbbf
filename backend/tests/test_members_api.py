"""
Tests for the member and user HTTP endpoints.

Tests cover:
- Authentication and role enforcement
- Create, read, update and accept through the API
- Self-service access to the caller's own record
- CSV upload, cleanup and the mailing-list endpoints
"""
import pytest
from httpx import AsyncClient

from gtc_api.core.security import ApplicationRole
from gtc_api.models.member import MemberStatus

from conftest import auth_headers_for, make_member

API = "/api/v1"


def member_payload(**overrides) -> dict:
    payload = {
        "type": "FULL",
        "status": "APPLIED",
        "salutation": "MR",
        "first_name": "Peter",
        "last_name": "Parker",
        "email": "peter@example.com",
    }
    payload.update(overrides)
    return payload


class TestAuth:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["message"] == "API is healthy."

    @pytest.mark.asyncio
    async def test_no_token(self, client: AsyncClient):
        response = await client.get(f"{API}/member/all")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_token(self, client: AsyncClient):
        response = await client.get(
            f"{API}/member/all", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_reader_cannot_create(self, client: AsyncClient, read_headers):
        response = await client.post(f"{API}/member", json=member_payload(), headers=read_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_list(self, client: AsyncClient, member_headers):
        response = await client.get(f"{API}/member/all", headers=member_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_user_roles(self, client: AsyncClient, member_headers):
        response = await client.get(f"{API}/user/roles", headers=member_headers)
        assert response.json() == ["MEMBER"]

        response = await client.get(f"{API}/user/metadata/app", headers=member_headers)
        assert response.json()["membershipNumber"] == 100


class TestMemberEndpoints:

    @pytest.mark.asyncio
    async def test_create_assigns_number(self, client: AsyncClient, test_member, manage_headers):
        response = await client.post(f"{API}/member", json=member_payload(), headers=manage_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["membership_number"] == 101
        assert data["status"] == "APPLIED"
        assert len(data["id"]) == 24

    @pytest.mark.asyncio
    async def test_create_illegal_status(self, client: AsyncClient, manage_headers):
        response = await client.post(
            f"{API}/member", json=member_payload(status="CURRENT"), headers=manage_headers
        )
        assert response.status_code == 400
        assert "Cannot transition" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_create_invalid(self, client: AsyncClient, manage_headers):
        response = await client.post(
            f"{API}/member", json=member_payload(email="nope"), headers=manage_headers
        )
        assert response.status_code == 422
        assert "Not a valid email address." in response.json()["messages"][0]

    @pytest.mark.asyncio
    async def test_list_and_filters(self, client: AsyncClient, test_member, test_application, read_headers):
        response = await client.get(f"{API}/member/all", headers=read_headers)
        assert len(response.json()) == 2

        response = await client.get(f"{API}/member/applications", headers=read_headers)
        assert [m["id"] for m in response.json()] == [test_application.id]

        response = await client.get(f"{API}/member/status/CURRENT", headers=read_headers)
        assert [m["id"] for m in response.json()] == [test_member.id]

        response = await client.get(f"{API}/member/search/smith", headers=read_headers)
        assert [m["id"] for m in response.json()] == [test_member.id]

    @pytest.mark.asyncio
    async def test_get_by_number_and_id(self, client: AsyncClient, test_member, read_headers):
        response = await client.get(f"{API}/member/100", headers=read_headers)
        assert response.status_code == 200
        assert response.json()["id"] == test_member.id

        response = await client.get(f"{API}/member/id/{test_member.id}", headers=read_headers)
        assert response.json()["membership_number"] == 100

        response = await client.get(f"{API}/member/999", headers=read_headers)
        assert response.status_code == 404

        response = await client.get(f"{API}/member/id/not-an-id", headers=read_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_by_id(self, client: AsyncClient, test_member, manage_headers):
        payload = member_payload(
            membership_number=100, status="LAPSED", first_name="John", last_name="Smith"
        )
        response = await client.put(
            f"{API}/member/id/{test_member.id}", json=payload, headers=manage_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "LAPSED"

    @pytest.mark.asyncio
    async def test_update_illegal_transition(self, client: AsyncClient, test_member, manage_headers):
        payload = member_payload(membership_number=100, status="PAID")
        response = await client.put(
            f"{API}/member/id/{test_member.id}", json=payload, headers=manage_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_to_number_in_use(self, client: AsyncClient, store, test_member, manage_headers):
        other = await store.create(make_member(membership_number=200, first_name="Ann"))
        payload = member_payload(
            membership_number=100, status="CURRENT", first_name="Ann", last_name="Smith"
        )
        response = await client.put(
            f"{API}/member/id/{other.id}", json=payload, headers=manage_headers
        )

        assert response.status_code == 422
        assert "membership number 100" in response.json()["detail"]
        assert len(await store.find_by_member_number(100)) == 1

    @pytest.mark.asyncio
    async def test_accept_application(
        self, client: AsyncClient, store, test_member, test_application, manage_headers
    ):
        response = await client.post(
            f"{API}/member/{test_application.id}/accept", headers=manage_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"
        assert response.json()["membership_number"] == 101
        stored = await store.get_by_member_number(101)
        assert stored.id == test_application.id

    @pytest.mark.asyncio
    async def test_reference_data(self, client: AsyncClient, test_member, member_headers):
        response = await client.get(f"{API}/member/nextMemberNumber", headers=member_headers)
        assert response.json() == 101

        response = await client.get(f"{API}/member/statusTypes", headers=member_headers)
        assert "CURRENT" in response.json()

        response = await client.get(f"{API}/member/memberTypes", headers=member_headers)
        assert "FULL" in response.json()

    @pytest.mark.asyncio
    async def test_verify_is_public(self, client: AsyncClient, test_member):
        response = await client.get(f"{API}/member/100/smith/verify")
        assert response.json() is True

        response = await client.get(f"{API}/member/100/jones/verify")
        assert response.json() is False


class TestSelfService:

    @pytest.mark.asyncio
    async def test_get_me(self, client: AsyncClient, test_member, member_headers):
        response = await client.get(f"{API}/member/me", headers=member_headers)
        assert response.status_code == 200
        assert response.json()["id"] == test_member.id

    @pytest.mark.asyncio
    async def test_no_membership_number(self, client: AsyncClient, test_member):
        headers = auth_headers_for(ApplicationRole.MEMBER)
        response = await client.get(f"{API}/member/me", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_me(self, client: AsyncClient, test_member, member_headers):
        payload = member_payload(
            status="CURRENT", first_name="John", last_name="Smith", city="Leeds"
        )
        response = await client.put(f"{API}/member/me", json=payload, headers=member_headers)

        assert response.status_code == 200
        assert response.json()["city"] == "Leeds"
        assert response.json()["membership_number"] == 100

    @pytest.mark.asyncio
    async def test_cannot_change_own_status(self, client: AsyncClient, test_member, member_headers):
        payload = member_payload(status="LAPSED", first_name="John", last_name="Smith")
        response = await client.put(f"{API}/member/me", json=payload, headers=member_headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "You can not update your own membership status."


class TestImportAndMaintenance:

    @pytest.mark.asyncio
    async def test_upload(self, client: AsyncClient, test_member, manage_headers, email_service):
        content = (
            "Type,Status,Membership Number,Salutation,First Name,Last Name,Email\n"
            "Full,Current,100,Mr,John,Smith,john@example.com\n"
            "Full,Current,200,Ms,Ann,Jones,ann@example.com\n"
        )
        response = await client.post(
            f"{API}/member/upload",
            files={"file": ("members.csv", content.encode("utf-8"), "text/csv")},
            data={"overwrite": "false"},
            headers=manage_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["importedSet"] == [100, 200]
        assert data["existingSet"] == [100]
        assert data["createdSet"] == [200]
        assert data["resultedInChange"] is True
        assert len(email_service.sent) == 1

    @pytest.mark.asyncio
    async def test_upload_malformed(self, client: AsyncClient, manage_headers):
        response = await client.post(
            f"{API}/member/upload",
            files={"file": ("members.csv", b"Name,Address\nJohn,Leeds\n", "text/csv")},
            headers=manage_headers,
        )
        assert response.status_code == 400
        assert "Missing columns" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_cleanup_requires_admin(self, client: AsyncClient, manage_headers):
        response = await client.post(f"{API}/member/cleanup", headers=manage_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cleanup(self, client: AsyncClient, store, admin_headers):
        await store.create(make_member(salutation=None))

        response = await client.post(f"{API}/member/cleanup", headers=admin_headers)

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestMailchimpEndpoints:

    @pytest.mark.asyncio
    async def test_member_status(self, client: AsyncClient, test_member, manage_headers):
        response = await client.get(
            f"{API}/member/{test_member.id}/mailchimp/status", headers=manage_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "NOT_SUBSCRIBED"

    @pytest.mark.asyncio
    async def test_subscribe_me(self, client: AsyncClient, test_member, member_headers):
        response = await client.post(f"{API}/member/me/mailchimp/subscribe", headers=member_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "SUBSCRIBED"

    @pytest.mark.asyncio
    async def test_sync(self, client: AsyncClient, store, test_member, manage_headers):
        await store.create(make_member(membership_number=101, status=MemberStatus.LAPSED))

        response = await client.post(f"{API}/member/mailchimp/sync", headers=manage_headers)

        assert response.json() == {"synced": [100], "failed": []}

    @pytest.mark.asyncio
    async def test_batches(self, client: AsyncClient, manage_headers):
        response = await client.get(f"{API}/member/mailchimp/batches", headers=manage_headers)
        assert response.status_code == 200
        assert [b["id"] for b in response.json()] == ["batch123"]

        response = await client.get(f"{API}/member/mailchimp/batches/batch123", headers=manage_headers)
        assert response.json()["finished_operations"] == 3

    @pytest.mark.asyncio
    async def test_unknown_batch(self, client: AsyncClient, manage_headers):
        response = await client.get(f"{API}/member/mailchimp/batches/missing", headers=manage_headers)
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_batches_require_manage(self, client: AsyncClient, read_headers):
        response = await client.get(f"{API}/member/mailchimp/batches", headers=read_headers)
        assert response.status_code == 403

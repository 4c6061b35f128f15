import pytest

from labkeeper import models
from labkeeper.tests.conftest import add_member, auth_headers, lab_role, make_lab, make_user


@pytest.fixture
def admin_headers(db):
    return auth_headers(make_user(db, role="Admin"))


def _request(client, lab_id, user, role_id):
    return client.post(f"/api/labs/{lab_id}/admissions", json={"labRoleId": role_id}, headers=auth_headers(user))


def _admin_url(lab_id, admission_id=None, action=None):
    url = f"/api/admin/lab/{lab_id}/admissions"
    if admission_id is not None:
        url = f"{url}/{admission_id}/{action}"
    return url


def test_approved_request_creates_a_membership(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    resp = _request(client, lab.id, user, lab_role(db, "Lab Member").id)
    assert resp.status_code == 201
    admission = resp.json()
    assert admission["status"] == "PENDING"
    assert admission["labRole"]["name"] == "Lab Member"

    resp = client.put(_admin_url(lab.id, admission["id"], "approve"), json={"isPci": True}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["isReactivated"] is False
    assert body["admission"]["status"] == "APPROVED"
    assert body["admission"]["isPci"] is True
    assert body["member"]["userId"] == user.id
    assert body["member"]["labRole"]["name"] == "Lab Member"
    assert body["member"]["isPci"] is True

    db.expire_all()
    member = (
        db.query(models.LabMember)
        .filter(models.LabMember.lab_id == lab.id, models.LabMember.user_id == user.id)
        .one()
    )
    assert member.is_former is False


def test_approval_can_grant_a_different_role(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()

    resp = client.put(
        _admin_url(lab.id, admission["id"], "approve"),
        json={"labRoleId": lab_role(db, "Lab Manager").id},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["member"]["labRole"]["name"] == "Lab Manager"
    assert resp.json()["admission"]["labRoleId"] == lab_role(db, "Lab Manager").id


def test_approving_a_former_member_reactivates_the_same_row(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    former = add_member(db, user, lab, "Former Member")

    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()
    resp = client.put(_admin_url(lab.id, admission["id"], "approve"), json={}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["isReactivated"] is True
    assert body["member"]["id"] == former.id
    assert body["member"]["isFormer"] is False
    assert db.query(models.LabMember).filter(models.LabMember.lab_id == lab.id).count() == 1


def test_active_member_cannot_request_admission(client, db):
    lab = make_lab(db)
    user = make_user(db)
    add_member(db, user, lab, "Lab Member")
    resp = _request(client, lab.id, user, lab_role(db, "Lab Manager").id)
    assert resp.status_code == 409


def test_second_pending_request_conflicts(client, db):
    lab = make_lab(db)
    user = make_user(db)
    role_id = lab_role(db, "Lab Member").id
    assert _request(client, lab.id, user, role_id).status_code == 201
    assert _request(client, lab.id, user, role_id).status_code == 409


def test_former_member_role_cannot_be_requested_or_granted(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    tombstone_id = lab_role(db, "Former Member").id
    assert _request(client, lab.id, user, tombstone_id).status_code == 400

    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()
    resp = client.put(
        _admin_url(lab.id, admission["id"], "approve"),
        json={"labRoleId": tombstone_id},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    db.expire_all()
    assert db.get(models.LabAdmission, admission["id"]).status == "PENDING"


def test_unknown_lab_or_role(client, db):
    user = make_user(db)
    assert _request(client, 999999, user, lab_role(db, "Lab Member").id).status_code == 404
    assert _request(client, make_lab(db).id, user, 999999).status_code == 404


def test_reject_only_from_pending(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()

    resp = client.put(_admin_url(lab.id, admission["id"], "reject"), headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "REJECTED"

    again = client.put(_admin_url(lab.id, admission["id"], "approve"), json={}, headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Cannot approve admission request with status: REJECTED"
    assert client.put(_admin_url(lab.id, admission["id"], "reject"), headers=admin_headers).status_code == 400

    # a rejected request does not block a new one
    assert _request(client, lab.id, user, lab_role(db, "Lab Member").id).status_code == 201


def test_withdraw_is_for_the_requester_only(client, db, admin_headers):
    lab = make_lab(db)
    user = make_user(db)
    other = make_user(db)
    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()
    url = f"/api/admissions/{admission['id']}/withdraw"

    assert client.put(url, headers=auth_headers(other)).status_code == 403

    resp = client.put(url, headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json()["status"] == "WITHDRAWN"

    assert client.put(url, headers=auth_headers(user)).status_code == 400
    approve = client.put(_admin_url(lab.id, admission["id"], "approve"), json={}, headers=admin_headers)
    assert approve.status_code == 400
    assert client.put("/api/admissions/999999/withdraw", headers=auth_headers(user)).status_code == 404


def test_lab_members_cannot_decide_admissions(client, db):
    lab = make_lab(db)
    user = make_user(db)
    member = make_user(db)
    add_member(db, member, lab, "Lab Member")
    admission = _request(client, lab.id, user, lab_role(db, "Lab Member").id).json()

    resp = client.put(_admin_url(lab.id, admission["id"], "approve"), json={}, headers=auth_headers(member))
    assert resp.status_code == 403
    assert client.get(_admin_url(lab.id), headers=auth_headers(member)).status_code == 403


def test_lab_manager_decides_only_their_own_labs_requests(client, db):
    lab = make_lab(db)
    other_lab = make_lab(db)
    manager = make_user(db)
    add_member(db, manager, lab, "Lab Manager")
    add_member(db, manager, other_lab, "Lab Manager")
    user = make_user(db)
    admission = _request(client, other_lab.id, user, lab_role(db, "Lab Member").id).json()

    resp = client.put(_admin_url(lab.id, admission["id"], "reject"), headers=auth_headers(manager))
    assert resp.status_code == 404

    resp = client.put(_admin_url(other_lab.id, admission["id"], "reject"), headers=auth_headers(manager))
    assert resp.status_code == 200


def test_listings_per_lab_and_per_user(client, db, admin_headers):
    lab = make_lab(db)
    other_lab = make_lab(db)
    user = make_user(db)
    other = make_user(db)
    role_id = lab_role(db, "Lab Member").id
    first = _request(client, lab.id, user, role_id).json()
    _request(client, lab.id, other, role_id)
    _request(client, other_lab.id, user, role_id)
    client.put(_admin_url(lab.id, first["id"], "reject"), headers=admin_headers)

    resp = client.get(_admin_url(lab.id), headers=admin_headers)
    assert resp.status_code == 200
    assert {a["userId"] for a in resp.json()} == {user.id, other.id}
    assert all(a["labId"] == lab.id for a in resp.json())

    pending = client.get(_admin_url(lab.id), params={"status": "PENDING"}, headers=admin_headers).json()
    assert [a["userId"] for a in pending] == [other.id]
    assert pending[0]["user"]["id"] == other.id

    assert client.get(_admin_url(lab.id), params={"status": "LOST"}, headers=admin_headers).status_code == 422

    mine = client.get("/api/admissions/me", headers=auth_headers(user)).json()
    assert {a["labId"] for a in mine} == {lab.id, other_lab.id}
    assert {a["status"] for a in mine} == {"PENDING", "REJECTED"}

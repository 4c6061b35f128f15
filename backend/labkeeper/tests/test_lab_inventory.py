import pytest

from labkeeper import models
from labkeeper.errors import InvalidInput
from labkeeper.services.lab_inventory import LabInventory
from labkeeper.tests.conftest import (
    add_member,
    auth_headers,
    lab_access,
    make_item,
    make_lab,
    make_tag,
    make_user,
)


def _logs(db, inventory_item_id):
    db.expire_all()
    return (
        db.query(models.InventoryLog)
        .filter(models.InventoryLog.lab_inventory_item_id == inventory_item_id)
        .order_by(models.InventoryLog.id)
        .all()
    )


def _add(client, setup, **overrides):
    payload = {
        "itemId": setup["item"].id,
        "location": "Shelf A",
        "itemUnit": "mL",
        "currentStock": 100,
        "minStock": 10,
        "tagIds": [],
    }
    payload.update(overrides)
    return client.post(f"/api/lab/{setup['lab'].id}/inventory", json=payload, headers=setup["headers"])


def test_add_update_remove_scenario(client, db, manager_setup):
    lab_id = manager_setup["lab"].id
    item_id = manager_setup["item"].id
    headers = manager_setup["headers"]

    resp = _add(client, manager_setup)
    assert resp.status_code == 201
    created = resp.json()
    assert created["currentStock"] == 100
    assert created["item"]["id"] == item_id

    logs = _logs(db, created["id"])
    assert [log.action for log in logs] == ["ITEM_ADDED"]
    added = logs[0]
    assert added.new_values["currentStock"] == 100
    assert added.new_values["labId"] == lab_id
    assert added.new_values["itemName"] == manager_setup["item"].name
    assert added.previous_values == {"labId": lab_id}
    assert added.source == "LAB_INTERFACE"
    assert added.member_id == manager_setup["member"].id

    resp = client.put(f"/api/lab/{lab_id}/inventory/{item_id}", json={"currentStock": 80}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["currentStock"] == 80
    assert resp.json()["location"] == "Shelf A"

    logs = _logs(db, created["id"])
    assert [log.action for log in logs] == ["ITEM_ADDED", "STOCK_UPDATE"]
    stock = logs[1]
    assert stock.previous_values["currentStock"] == 100
    assert stock.new_values["currentStock"] == 80
    assert stock.quantity_changed == -20

    resp = client.delete(f"/api/lab/{lab_id}/inventory/{item_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Item removed from lab inventory"
    assert resp.json()["item"]["currentStock"] == 80

    db.expire_all()
    assert (
        db.query(models.LabInventoryItem)
        .filter(models.LabInventoryItem.lab_id == lab_id, models.LabInventoryItem.item_id == item_id)
        .count()
        == 0
    )

    resp = client.get(f"/api/lab/{lab_id}/inventory-logs", headers=headers)
    assert resp.status_code == 200
    page = resp.json()
    assert page["totalCount"] == 3
    assert [log["action"] for log in page["logs"]] == ["ITEM_REMOVED", "STOCK_UPDATE", "ITEM_ADDED"]
    removed = page["logs"][0]
    assert removed["labInventoryItemId"] is None
    assert removed["previousValues"]["labId"] == lab_id
    assert removed["previousValues"]["location"] == "Shelf A"
    assert removed["previousValues"]["itemUnit"] == "mL"
    assert removed["previousValues"]["minStock"] == 10
    assert removed["previousValues"]["item"]["id"] == item_id
    assert all(log["labInventoryItemId"] is None for log in page["logs"])


def test_duplicate_add_conflicts_and_keeps_one_row(client, db, manager_setup):
    assert _add(client, manager_setup).status_code == 201
    resp = _add(client, manager_setup, location="Shelf B")
    assert resp.status_code == 409

    db.expire_all()
    rows = (
        db.query(models.LabInventoryItem)
        .filter(
            models.LabInventoryItem.lab_id == manager_setup["lab"].id,
            models.LabInventoryItem.item_id == manager_setup["item"].id,
        )
        .all()
    )
    assert len(rows) == 1
    assert rows[0].location == "Shelf A"


def test_add_requires_existing_lab_and_item(client, db):
    admin = make_user(db, role="Admin")
    headers = auth_headers(admin)
    item = make_item(db)

    resp = client.post(
        "/api/admin/lab/987654/inventory",
        json={"itemId": item.id, "location": "Shelf", "itemUnit": "g"},
        headers=headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Lab not found"

    lab = make_lab(db)
    resp = client.post(
        f"/api/admin/lab/{lab.id}/inventory",
        json={"itemId": 987654, "location": "Shelf", "itemUnit": "g"},
        headers=headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Item not found"


def test_add_rejects_blank_location(client, manager_setup):
    resp = _add(client, manager_setup, location="  ")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "location is required"


def test_invalid_tag_rolls_back_the_new_item(client, db, manager_setup):
    tag = make_tag(db)
    resp = _add(client, manager_setup, tagIds=[tag.id, 987654])
    assert resp.status_code == 400
    assert resp.json()["invalid_tag_ids"] == [987654]

    db.expire_all()
    assert (
        db.query(models.LabInventoryItem)
        .filter(models.LabInventoryItem.lab_id == manager_setup["lab"].id)
        .count()
        == 0
    )
    page = db.query(models.InventoryLog).filter(models.InventoryLog.user_id == manager_setup["user"].id).count()
    assert page == 0


def test_add_with_tags(client, manager_setup, db):
    tags = [make_tag(db), make_tag(db)]
    resp = _add(client, manager_setup, tagIds=[t.id for t in tags])
    assert resp.status_code == 201
    assert sorted(t["id"] for t in resp.json()["tags"]) == sorted(t.id for t in tags)
    log = _logs(db, resp.json()["id"])[0]
    assert sorted(log.new_values["tagIds"]) == sorted(t.id for t in tags)


def test_update_location_and_stock_logs_two_entries(client, db, manager_setup):
    created = _add(client, manager_setup).json()
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}"

    resp = client.put(
        url,
        json={"location": "Fridge 2", "currentStock": 40, "minStock": 10, "itemUnit": "mL"},
        headers=manager_setup["headers"],
    )
    assert resp.status_code == 200

    logs = _logs(db, created["id"])[1:]
    assert sorted(log.action for log in logs) == ["LOCATION_CHANGE", "STOCK_UPDATE"]
    location = next(log for log in logs if log.action == "LOCATION_CHANGE")
    assert location.previous_values == {"labId": manager_setup["lab"].id, "location": "Shelf A"}
    assert location.new_values == {"labId": manager_setup["lab"].id, "location": "Fridge 2"}
    assert location.quantity_changed is None


def test_update_with_unchanged_values_logs_nothing(client, db, manager_setup):
    created = _add(client, manager_setup).json()
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}"

    resp = client.put(url, json={"location": "Shelf A", "currentStock": 100}, headers=manager_setup["headers"])
    assert resp.status_code == 200
    assert len(_logs(db, created["id"])) == 1


def test_update_unit_and_threshold(client, db, manager_setup):
    created = _add(client, manager_setup).json()
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}"

    client.put(url, json={"itemUnit": "L", "minStock": 25}, headers=manager_setup["headers"])
    logs = {log.action: log for log in _logs(db, created["id"])[1:]}
    assert set(logs) == {"ITEM_UPDATE", "MIN_STOCK_UPDATE"}
    assert logs["ITEM_UPDATE"].previous_values["itemUnit"] == "mL"
    assert logs["ITEM_UPDATE"].new_values["itemUnit"] == "L"
    assert logs["MIN_STOCK_UPDATE"].new_values == {"labId": manager_setup["lab"].id, "minStock": 25}


def test_update_missing_item_is_not_found(client, manager_setup):
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}"
    resp = client.put(url, json={"currentStock": 3}, headers=manager_setup["headers"])
    assert resp.status_code == 404


def test_remove_missing_item_is_not_found(client, manager_setup):
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}"
    assert client.delete(url, headers=manager_setup["headers"]).status_code == 404


def test_tag_add_and_remove(client, db, manager_setup):
    _add(client, manager_setup)
    tag = make_tag(db)
    url = f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}/tags"
    headers = manager_setup["headers"]

    resp = client.post(url, json={"tagIds": [tag.id]}, headers=headers)
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()["tags"]] == [tag.id]

    again = client.post(url, json={"tagIds": [tag.id]}, headers=headers)
    assert again.status_code == 409

    unknown = client.post(url, json={"tagIds": [987654]}, headers=headers)
    assert unknown.status_code == 404

    resp = client.delete(f"{url}/{tag.id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["tags"] == []

    assert client.delete(f"{url}/{tag.id}", headers=headers).status_code == 404


def test_admin_without_membership_writes_with_null_member(client, db):
    lab = make_lab(db)
    item = make_item(db)
    admin = make_user(db, role="Admin")
    headers = auth_headers(admin)

    resp = client.post(
        f"/api/admin/lab/{lab.id}/inventory",
        json={"itemId": item.id, "location": "Bench", "itemUnit": "g", "currentStock": 5},
        headers=headers,
    )
    assert resp.status_code == 201
    log = _logs(db, resp.json()["id"])[0]
    assert log.member_id is None
    assert log.user_id == admin.id
    assert log.source == "ADMIN_PANEL"

    client.put(f"/api/lab/{lab.id}/inventory/{item.id}", json={"currentStock": 6}, headers=headers)
    log = _logs(db, resp.json()["id"])[-1]
    assert log.source == "API_DIRECT"


def test_members_below_manager_cannot_mutate(client, db):
    lab = make_lab(db)
    item = make_item(db)
    user = make_user(db)
    add_member(db, user, lab, "Lab Member")

    resp = client.post(
        f"/api/lab/{lab.id}/inventory",
        json={"itemId": item.id, "location": "Bench", "itemUnit": "g"},
        headers=auth_headers(user),
    )
    assert resp.status_code == 403
    assert "Insufficient lab permission" in resp.json()["detail"]


def test_outsiders_cannot_read_inventory(client, db):
    lab = make_lab(db)
    outsider = make_user(db)
    resp = client.get(f"/api/lab/{lab.id}/inventory", headers=auth_headers(outsider))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Access denied: You are not a member of this lab"


def test_list_and_low_stock(client, db, manager_setup):
    other = make_item(db)
    _add(client, manager_setup, currentStock=5, minStock=10)
    client.post(
        f"/api/lab/{manager_setup['lab'].id}/inventory",
        json={"itemId": other.id, "location": "Shelf C", "itemUnit": "g", "currentStock": 50, "minStock": 10},
        headers=manager_setup["headers"],
    )
    reader = make_user(db)
    add_member(db, reader, manager_setup["lab"], "Lab Member")
    headers = auth_headers(reader)

    listing = client.get(f"/api/lab/{manager_setup['lab'].id}/inventory", headers=headers)
    assert listing.status_code == 200
    assert {row["itemId"] for row in listing.json()} == {manager_setup["item"].id, other.id}

    low = client.get(f"/api/lab/{manager_setup['lab'].id}/inventory/low-stock", headers=headers)
    assert low.status_code == 200
    assert [row["itemId"] for row in low.json()] == [manager_setup["item"].id]


def test_rejected_update_leaves_no_unlogged_change(db, manager_setup):
    access = lab_access(db, manager_setup["user"], manager_setup["lab"])
    item_id = manager_setup["item"].id
    inventory = LabInventory(db)
    created = inventory.add_item(access, item_id=item_id, location="A", item_unit="mL", current_stock=5)

    with pytest.raises(InvalidInput):
        inventory.update_item(access, item_id, {"location": "B", "current_stock": -1})
    inventory.replenish_stock(access, item_id, 1)

    db.expire_all()
    inv = inventory.get_item(manager_setup["lab"].id, item_id)
    assert inv.location == "A"
    assert inv.current_stock == 6
    assert [log.action for log in _logs(db, created.id)] == ["ITEM_ADDED", "STOCK_ADD"]

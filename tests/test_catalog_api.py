"""Admin and public reference data endpoints."""


class TestStates:

    def test_create_uppercases_code(self, client, admin_headers):
        response = client.post("/api/admin/states", json={"name": "Bihar", "code": "br"}, headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["code"] == "BR"
        assert body["id"]
        assert body["createdAt"]

    def test_duplicate_code_rejected(self, client, admin_headers):
        client.post("/api/admin/states", json={"name": "Bihar", "code": "BR"}, headers=admin_headers)
        response = client.post("/api/admin/states", json={"name": "Bihar Two", "code": "br"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "State code already exists"

    def test_update_keeps_own_code(self, client, admin_headers):
        state = client.post("/api/admin/states", json={"name": "Bihar", "code": "BR"}, headers=admin_headers).json()
        response = client.put(
            f"/api/admin/states/{state['id']}", json={"name": "Bihar State", "code": "BR"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Bihar State"

    def test_empty_update(self, client, admin_headers):
        state = client.post("/api/admin/states", json={"name": "Bihar", "code": "BR"}, headers=admin_headers).json()
        response = client.put(f"/api/admin/states/{state['id']}", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "No fields to update"

    def test_list_is_sorted_and_searchable(self, client, admin_headers):
        for name, code in (("Rajasthan", "RJ"), ("Assam", "AS"), ("Goa", "GA")):
            client.post("/api/admin/states", json={"name": name, "code": code}, headers=admin_headers)
        names = [s["name"] for s in client.get("/api/states").json()]
        assert names == ["Assam", "Goa", "Rajasthan"]
        found = client.get("/api/admin/states", params={"search": "rj"}, headers=admin_headers).json()
        assert [s["name"] for s in found] == ["Rajasthan"]

    def test_invalid_and_missing_ids(self, client, admin_headers):
        assert client.get("/api/admin/states/not-an-id", headers=admin_headers).status_code == 400
        response = client.get(f"/api/admin/states/{'0' * 24}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "STATE_NOT_FOUND"


class TestDeletes:

    def test_state_delete_leaves_children_by_default(self, client, admin_headers, location, mock_db):
        response = client.delete(f"/api/admin/states/{location['state']['id']}", headers=admin_headers)
        assert response.json() == {"success": True, "districts": 0, "tehsils": 0}
        assert mock_db["districts"].count_documents({}) == 1
        assert mock_db["tehsils"].count_documents({}) == 1

    def test_state_cascade(self, client, admin_headers, location, mock_db):
        response = client.delete(
            f"/api/admin/states/{location['state']['id']}", params={"cascade": "true"}, headers=admin_headers
        )
        assert response.json() == {"success": True, "districts": 1, "tehsils": 1}
        assert mock_db["districts"].count_documents({}) == 0
        assert mock_db["tehsils"].count_documents({}) == 0

    def test_district_cascade(self, client, admin_headers, location, mock_db):
        response = client.delete(
            f"/api/admin/districts/{location['district']['id']}", params={"cascade": "true"}, headers=admin_headers
        )
        assert response.json() == {"success": True, "tehsils": 1}
        assert mock_db["tehsils"].count_documents({}) == 0

    def test_delete_missing(self, client, admin_headers):
        response = client.delete(f"/api/admin/tehsils/{'0' * 24}", headers=admin_headers)
        assert response.status_code == 404


class TestLocationsAndCatalog:

    def test_public_filters(self, client, location):
        state_id = location["state"]["id"]
        districts = client.get("/api/districts", params={"stateId": state_id}).json()
        assert [d["name"] for d in districts] == ["Lucknow"]
        assert client.get("/api/districts", params={"stateId": "other"}).json() == []
        tehsils = client.get("/api/tehsils", params={"districtId": location["district"]["id"]}).json()
        assert [t["name"] for t in tehsils] == ["Sadar"]

    def test_tehsils_by_state(self, client, admin_headers, location):
        tehsils = client.get(
            "/api/admin/tehsils", params={"stateId": location["state"]["id"]}, headers=admin_headers
        ).json()
        assert [t["name"] for t in tehsils] == ["Sadar"]

    def test_category_description_min_length(self, client, admin_headers):
        response = client.post(
            "/api/admin/stamp-categories", json={"name": "Judicial", "description": "short"}, headers=admin_headers
        )
        assert response.status_code == 422

    def test_product_crud(self, client, admin_headers, location):
        category = client.post(
            "/api/admin/stamp-categories",
            json={"name": "Non-Judicial", "description": "For agreements and deeds"},
            headers=admin_headers,
        ).json()
        product = client.post("/api/admin/stamp-products", headers=admin_headers, json={
            "name": "E-Stamp 500",
            "categoryId": category["id"],
            "stateId": location["state"]["id"],
            "amount": 500,
            "platformFee": 20,
            "deliveryTime": "instant",
        }).json()
        assert product["expressFee"] == 0

        updated = client.put(
            f"/api/admin/stamp-products/{product['id']}", json={"amount": 600}, headers=admin_headers
        ).json()
        assert updated["amount"] == 600
        assert updated["platformFee"] == 20

        listed = client.get("/api/stamp-products", params={"categoryId": category["id"]}).json()
        assert [p["id"] for p in listed] == [product["id"]]

        assert client.delete(f"/api/admin/stamp-products/{product['id']}", headers=admin_headers).json() == {
            "success": True
        }
        assert client.get("/api/stamp-products").json() == []

    def test_negative_amount_rejected(self, client, admin_headers):
        response = client.post("/api/admin/stamp-products", headers=admin_headers, json={
            "name": "Bad", "categoryId": "c1", "stateId": "s1", "amount": -1, "deliveryTime": "instant",
        })
        assert response.status_code == 422

    def test_admin_routes_need_token(self, client):
        assert client.post("/api/admin/states", json={"name": "Goa", "code": "GA"}).status_code == 401
        response = client.get("/api/admin/states", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401

    def test_document_types(self, client):
        assert len(client.get("/api/document-types").json()) == 8


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json() == {"message": "e-Stamp Express Backend Running"}

    def test_database_report(self, client):
        body = client.get("/test").json()
        assert body["connection_status"] == "Connected"
        assert body["backend"] == "✅ Running"

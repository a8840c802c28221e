"""Tests for seller-scoped category management."""

import pytest

from conftest import ADMIN_EMAIL


class TestCategories:
    @pytest.fixture
    def seller(self, make_seller):
        return make_seller()

    @pytest.fixture
    def headers(self, seller, auth_headers):
        return auth_headers()

    @pytest.fixture
    def create_category(self, client, headers):
        def create(name, **fields):
            payload = {"name": name, "description": f"{name} items", **fields}
            response = client.post("/api/category/create", json=payload, headers=headers)
            assert response.status_code == 201, response.get_json()
            return response.get_json()["category"]

        return create

    def test_catalog_requires_active_seller(self, client, make_seller, auth_headers):
        """Test sellers still onboarding cannot manage categories."""
        make_seller(email="pending@example.com", status="pending-admin-approval")

        response = client.get("/api/category/all", headers=auth_headers("pending@example.com"))

        assert response.status_code == 403
        assert response.get_json()["sellerStatus"] == "pending-admin-approval"

    def test_create_category(self, client, headers):
        """Test creating a top-level category with attributes."""
        response = client.post(
            "/api/category/create",
            json={
                "name": "  Dairy   Products ",
                "parentCategory": None,
                "attributes": {
                    "returnPolicy": "No returns on opened packs",
                    "customerCareEmail": "Care@FreshBasket.in",
                    "expiryDateRequired": True,
                },
            },
            headers=headers,
        )

        assert response.status_code == 201
        category = response.get_json()["category"]
        assert category["name"] == "Dairy Products"
        assert category["slug"] == "dairy-products"
        assert category["parentCategory"] is None
        assert category["status"] == "active"
        assert category["attributes"]["customerCareEmail"] == "care@freshbasket.in"
        assert category["attributes"]["expiryDateRequired"] is True

    def test_duplicate_name_conflicts(self, client, headers, create_category):
        """Test slugs are unique per seller."""
        create_category("Snacks")

        response = client.post("/api/category/create", json={"name": "snacks"}, headers=headers)

        assert response.status_code == 409

    def test_same_name_allowed_for_other_seller(
        self, client, create_category, make_seller, auth_headers
    ):
        """Test two sellers can each own a category with the same name."""
        create_category("Snacks")
        make_seller(email="other@example.com")

        response = client.post(
            "/api/category/create",
            json={"name": "Snacks"},
            headers=auth_headers("other@example.com"),
        )

        assert response.status_code == 201

    def test_invalid_attribute_email(self, client, headers):
        """Test category attribute emails are validated."""
        response = client.post(
            "/api/category/create",
            json={"name": "Beverages", "attributes": {"customerCareEmail": "nope"}},
            headers=headers,
        )

        assert response.status_code == 400

    def test_subcategory_tree_is_two_levels(self, client, headers, create_category):
        """Test a subcategory cannot become a parent."""
        parent = create_category("Dairy")
        child = create_category("Milk", parentCategory=parent["_id"])

        assert child["parentCategory"] == parent["_id"]

        response = client.post(
            "/api/category/create",
            json={"name": "Toned Milk", "parentCategory": child["_id"]},
            headers=headers,
        )
        assert response.status_code == 400

    def test_parent_must_belong_to_seller(
        self, client, create_category, make_seller, auth_headers
    ):
        """Test a seller cannot nest under another seller's category."""
        parent = create_category("Dairy")
        make_seller(email="other@example.com")

        response = client.post(
            "/api/category/create",
            json={"name": "Cheese", "parentCategory": parent["_id"]},
            headers=auth_headers("other@example.com"),
        )

        assert response.status_code == 404

    def test_category_cannot_be_its_own_parent(self, client, headers, create_category):
        """Test self-parenting is rejected."""
        category = create_category("Bakery")

        response = client.put(
            f"/api/category/update/{category['_id']}",
            json={"parentCategory": category["_id"]},
            headers=headers,
        )

        assert response.status_code == 400

    def test_category_with_children_cannot_take_parent(self, client, headers, create_category):
        """Test moving a parent under another category would nest three levels."""
        dairy = create_category("Dairy")
        create_category("Milk", parentCategory=dairy["_id"])
        fresh = create_category("Fresh")

        response = client.put(
            f"/api/category/update/{dairy['_id']}",
            json={"parentCategory": fresh["_id"]},
            headers=headers,
        )

        assert response.status_code == 400

    def test_get_category_includes_inherited_attributes(
        self, client, headers, create_category
    ):
        """Test subcategories inherit blank attributes from their parent."""
        parent = create_category(
            "Dairy",
            attributes={
                "returnPolicy": "7 day replacement",
                "manufacturerName": "Fresh Farms",
                "expiryDateRequired": True,
            },
        )
        child = create_category(
            "Milk",
            parentCategory=parent["_id"],
            attributes={"manufacturerName": "Milky Way Dairy"},
        )

        response = client.get(f"/api/category/get/{child['_id']}", headers=headers)

        assert response.status_code == 200
        category = response.get_json()["category"]
        assert category["parentName"] == "Dairy"
        assert category["attributes"]["returnPolicy"] == ""
        assert category["inheritedAttributes"]["returnPolicy"] == "7 day replacement"
        assert category["inheritedAttributes"]["manufacturerName"] == "Milky Way Dairy"
        assert category["inheritedAttributes"]["expiryDateRequired"] is True

    def test_list_categories_with_filters(
        self, client, headers, create_category, mongo_db, seller
    ):
        """Test listing returns product counts and honours filters."""
        dairy = create_category("Dairy")
        create_category("Frozen", status="inactive")
        mongo_db.products.insert_one(
            {
                "seller_id": seller["_id"],
                "category_id": mongo_db.categories.find_one({"slug": "dairy"})["_id"],
                "title": "Paneer",
            }
        )

        response = client.get("/api/category/all", headers=headers)
        categories = {category["name"]: category for category in response.get_json()["categories"]}
        assert set(categories) == {"Dairy", "Frozen"}
        assert categories["Dairy"]["productCount"] == 1
        assert categories["Frozen"]["productCount"] == 0

        response = client.get("/api/category/all?status=inactive", headers=headers)
        assert [category["name"] for category in response.get_json()["categories"]] == ["Frozen"]

        response = client.get("/api/category/all?search=dai", headers=headers)
        assert [category["_id"] for category in response.get_json()["categories"]] == [dairy["_id"]]

    def test_sellers_only_see_their_categories(
        self, client, create_category, make_seller, auth_headers
    ):
        """Test categories are isolated per seller while admins see all."""
        category = create_category("Dairy")
        make_seller(email="other@example.com")
        make_seller(email=ADMIN_EMAIL)

        other_list = client.get("/api/category/all", headers=auth_headers("other@example.com"))
        assert other_list.get_json()["categories"] == []

        other_get = client.get(
            f"/api/category/get/{category['_id']}", headers=auth_headers("other@example.com")
        )
        assert other_get.status_code == 404

        admin_list = client.get("/api/category/all", headers=auth_headers(ADMIN_EMAIL))
        assert len(admin_list.get_json()["categories"]) == 1

    def test_update_category(self, client, headers, create_category):
        """Test renaming a category refreshes the slug."""
        category = create_category("Snacks")

        response = client.put(
            f"/api/category/update/{category['_id']}",
            json={"name": "Namkeen & Snacks", "status": "inactive"},
            headers=headers,
        )

        assert response.status_code == 200
        updated = response.get_json()["category"]
        assert updated["slug"] == "namkeen-snacks"
        assert updated["status"] == "inactive"

    def test_invalid_category_id(self, client, headers):
        """Test malformed ids are rejected before lookup."""
        response = client.get("/api/category/get/not-an-id", headers=headers)

        assert response.status_code == 400

    def test_delete_blocked_by_children_and_products(
        self, client, headers, create_category, mongo_db, seller
    ):
        """Test referenced categories cannot be deleted."""
        parent = create_category("Dairy")
        child = create_category("Milk", parentCategory=parent["_id"])

        response = client.delete(f"/api/category/delete/{parent['_id']}", headers=headers)
        assert response.status_code == 409

        mongo_db.products.insert_one(
            {
                "seller_id": seller["_id"],
                "category_id": mongo_db.categories.find_one({"slug": "milk"})["_id"],
                "title": "Toned Milk",
            }
        )
        response = client.delete(f"/api/category/delete/{child['_id']}", headers=headers)
        assert response.status_code == 409

    def test_delete_category(self, client, headers, create_category, mongo_db):
        """Test deleting an unused category."""
        category = create_category("Seasonal")

        response = client.delete(f"/api/category/delete/{category['_id']}", headers=headers)

        assert response.status_code == 200
        assert mongo_db.categories.count_documents({}) == 0

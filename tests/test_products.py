"""Tests for the product catalog and product images."""

import os

import cloudinary.uploader
import pytest
from fastapi.testclient import TestClient

import uploads
from main import create_app

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _image(name="saree.png", data=PNG, content_type="image/png"):
    return {"image": (name, data, content_type)}


class TestCatalog:
    def test_list_empty(self, client, db):
        response = client.get("/api/products")
        assert response.status_code == 200
        assert response.json() == {"success": True, "count": 0, "products": []}

    def test_list_and_get(self, client, make_product):
        pid = make_product(name="Kurta", price=499.0)
        response = client.get("/api/products")
        assert response.json()["count"] == 1

        response = client.get(f"/api/products/{pid}")
        assert response.status_code == 200
        assert response.json()["product"]["name"] == "Kurta"

    def test_get_unknown(self, client, db):
        response = client.get("/api/products/64b7f0c2a1b2c3d4e5f60718")
        assert response.status_code == 404
        assert response.json()["message"] == "Product not found"

    def test_get_malformed_id_is_not_found(self, client, db):
        response = client.get("/api/products/not-an-id")
        assert response.status_code == 404

    def test_categories_are_distinct(self, client, make_product):
        make_product(category="Sarees")
        make_product(category="Sarees")
        make_product(category="Kurtis")
        response = client.get("/api/products/categories/list")
        assert response.json()["categories"] == ["Kurtis", "Sarees"]


class TestCreateProduct:
    def test_create_without_image(self, client, admin):
        response = client.post(
            "/api/products",
            data={"name": "Dupatta", "price": "250", "stock": "5", "category": "Accessories"},
            headers=admin["headers"],
        )
        assert response.status_code == 201
        product = response.json()["product"]
        assert product["price"] == 250.0
        assert product["stock"] == 5
        assert product["image"] is None
        assert product["user_id"] == admin["id"]

    def test_create_with_disk_image(self, client, admin, settings):
        response = client.post(
            "/api/products",
            data={"name": "Lehenga", "price": "1999"},
            files=_image(),
            headers=admin["headers"],
        )
        assert response.status_code == 201
        image = response.json()["product"]["image"]
        assert image["storage"] == "disk"
        assert image["url"].startswith("http://testserver/uploads/products/")
        assert os.path.exists(os.path.join(settings.uploads_dir, "products", image["public_id"]))

    def test_create_requires_price(self, client, admin, db):
        response = client.post("/api/products", data={"name": "Dupatta", "price": ""}, headers=admin["headers"])
        assert response.status_code == 400
        assert db["product"].count_documents({}) == 0

    def test_negative_price_rejected(self, client, admin):
        response = client.post("/api/products", data={"name": "Dupatta", "price": "-1"}, headers=admin["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "Price cannot be negative"

    @pytest.mark.parametrize("price", ["inf", "-inf", "nan", "Infinity"])
    def test_non_finite_price_rejected(self, client, admin, db, price):
        response = client.post("/api/products", data={"name": "Dupatta", "price": price}, headers=admin["headers"])
        assert response.status_code == 400
        assert response.json()["error_type"] == "ValidationError"
        assert response.json()["message"] == "Price must be a number"
        assert db["product"].count_documents({}) == 0

    def test_file_over_size_limit_rejected(self, client, admin, db, monkeypatch):
        monkeypatch.setattr(uploads, "MAX_FILE_SIZE", 1024)
        response = client.post(
            "/api/products",
            data={"name": "Lehenga", "price": "1999"},
            files=_image(data=b"\x00" * 1025),
            headers=admin["headers"],
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "UploadError"
        assert response.json()["message"] == "File too large. Maximum size is 20MB"
        assert db["product"].count_documents({}) == 0

    def test_file_at_size_limit_accepted(self, client, admin, monkeypatch):
        monkeypatch.setattr(uploads, "MAX_FILE_SIZE", 1024)
        response = client.post(
            "/api/products",
            data={"name": "Lehenga", "price": "1999"},
            files=_image(data=b"\x00" * 1024),
            headers=admin["headers"],
        )
        assert response.status_code == 201

    def test_non_image_upload_rejected(self, client, admin, db):
        response = client.post(
            "/api/products",
            data={"name": "Dupatta", "price": "10"},
            files=_image("notes.txt", b"hello", "text/plain"),
            headers=admin["headers"],
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Only image files are allowed!"
        assert db["product"].count_documents({}) == 0

    def test_non_admin_gets_403_and_nothing_is_created(self, client, user, db):
        response = client.post("/api/products", data={"name": "Dupatta", "price": "10"}, headers=user["headers"])
        assert response.status_code == 403
        assert db["product"].count_documents({}) == 0


class TestUpdateAndDelete:
    def test_update_fields(self, client, admin, make_product):
        pid = make_product(price=100.0, stock=3)
        response = client.put(f"/api/products/{pid}", data={"price": "120", "stock": "7"}, headers=admin["headers"])
        assert response.status_code == 200
        product = response.json()["product"]
        assert product["price"] == 120.0
        assert product["stock"] == 7
        assert product["name"] == "Silk Saree"

    @pytest.mark.parametrize("price", ["inf", "-inf", "nan"])
    def test_update_non_finite_price_leaves_product_unchanged(self, client, admin, db, make_product, price):
        pid = make_product(price=100.0)
        response = client.put(f"/api/products/{pid}", data={"price": price}, headers=admin["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "Price must be a number"
        assert db["product"].find_one()["price"] == 100.0

        listing = client.get("/api/products")
        assert listing.status_code == 200
        assert listing.json()["products"][0]["price"] == 100.0

    def test_replacing_image_removes_old_file(self, client, admin, settings):
        created = client.post(
            "/api/products", data={"name": "Lehenga", "price": "1999"}, files=_image(), headers=admin["headers"]
        ).json()["product"]
        old_path = os.path.join(settings.uploads_dir, "products", created["image"]["public_id"])

        response = client.post(
            f"/api/products/upload-image/{created['id']}", files=_image("new.png"), headers=admin["headers"]
        )
        assert response.status_code == 200
        assert response.json()["product"]["image"]["public_id"] != created["image"]["public_id"]
        assert not os.path.exists(old_path)

    def test_upload_image_requires_file(self, client, admin, make_product):
        pid = make_product()
        response = client.post(f"/api/products/upload-image/{pid}", headers=admin["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "No image uploaded"

    def test_non_admin_delete_is_forbidden(self, client, user, db, make_product):
        pid = make_product()
        response = client.delete(f"/api/products/{pid}", headers=user["headers"])
        assert response.status_code == 403
        assert db["product"].count_documents({}) == 1

    def test_delete_removes_image(self, client, admin, db, settings):
        created = client.post(
            "/api/products", data={"name": "Lehenga", "price": "1999"}, files=_image(), headers=admin["headers"]
        ).json()["product"]
        path = os.path.join(settings.uploads_dir, "products", created["image"]["public_id"])

        response = client.delete(f"/api/products/{created['id']}", headers=admin["headers"])
        assert response.status_code == 200
        assert db["product"].count_documents({}) == 0
        assert not os.path.exists(path)

    def test_delete_category(self, client, admin, db, make_product):
        make_product(category="Sarees")
        make_product(category="Sarees")
        make_product(category="Kurtis")
        response = client.delete("/api/products/category/Sarees", headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["deleted_count"] == 2
        assert db["product"].count_documents({}) == 1


class TestBlobImages:
    def test_store_and_serve_from_mongodb(self, db, settings, admin):
        client = TestClient(create_app(settings.model_copy(update={"upload_storage": "mongodb"})))
        response = client.post(
            "/api/products", data={"name": "Lehenga", "price": "1999"}, files=_image(), headers=admin["headers"]
        )
        assert response.status_code == 201
        image = response.json()["product"]["image"]
        assert image["storage"] == "mongodb"
        assert db["product_image"].count_documents({}) == 1

        served = client.get(f"/api/products/images/{image['public_id']}")
        assert served.status_code == 200
        assert served.headers["content-type"] == "image/png"
        assert served.content == PNG

    def test_cloudinary_store_and_delete(self, db, settings, admin, monkeypatch):
        uploaded, destroyed = [], []

        def fake_upload(data, **options):
            uploaded.append((data, options))
            return {
                "secure_url": "https://res.cloudinary.com/demo/image/upload/storefront/products/abc123.png",
                "public_id": "storefront/products/abc123",
            }

        def fake_destroy(public_id, **options):
            destroyed.append(public_id)
            return {"result": "ok"}

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
        monkeypatch.setattr(cloudinary.uploader, "destroy", fake_destroy)
        cloud_settings = settings.model_copy(update={
            "cloudinary_cloud_name": "demo",
            "cloudinary_api_key": "key",
            "cloudinary_api_secret": "secret",
        })
        app = create_app(cloud_settings)
        assert app.state.images.active.name == "cloudinary"
        client = TestClient(app)

        response = client.post(
            "/api/products", data={"name": "Lehenga", "price": "1999"}, files=_image(), headers=admin["headers"]
        )
        assert response.status_code == 201
        image = response.json()["product"]["image"]
        assert image["storage"] == "cloudinary"
        assert image["public_id"] == "storefront/products/abc123"
        assert image["url"].startswith("https://res.cloudinary.com/")
        assert uploaded[0][0] == PNG
        assert uploaded[0][1]["folder"] == "storefront/products"

        response = client.delete(f"/api/products/{response.json()['product']['id']}", headers=admin["headers"])
        assert response.status_code == 200
        assert destroyed == ["storefront/products/abc123"]

    def test_missing_blob(self, client, db):
        response = client.get("/api/products/images/64b7f0c2a1b2c3d4e5f60718")
        assert response.status_code == 404
        assert response.json()["message"] == "Image not found"

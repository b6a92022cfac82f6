import json

import pytest

JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


def register(client, email, role="customer", name="Test User"):
    res = client.post("/api/auth/register", json={"name": name, "email": email, "password": "secret-pass", "role": role})
    assert res.status_code == 201, res.text
    body = res.json()
    return body, {"Authorization": f"Bearer {body['token']}"}


@pytest.fixture
def artisan(client):
    body, headers = register(client, "potter@craftmail.in", role="artisan", name="Sita Devi")
    return body, headers


@pytest.fixture
def customer(client):
    return register(client, "buyer@craftmail.in")


def create_product(client, headers, **fields):
    data = {
        "title": "Terracotta Horse",
        "description": "Bankura-style horse figurine.",
        "category": "Pottery & Ceramics",
        "base_price": "1800",
        "tags": "bankura, horse , ",
    }
    data.update(fields)
    return client.post(
        "/api/products", data=data, headers=headers,
        files=[("images", ("horse.jpg", JPEG, "image/jpeg"))],
    )


def test_root_and_probe(client):
    assert client.get("/").json() == {"message": "Artisan marketplace backend is running"}
    assert client.get("/test").json()["backend"] == "✅ Running"


def test_register_login_profile(client, artisan):
    body, headers = artisan
    assert body["user"]["email"] == "potter@craftmail.in"
    assert "password_hash" not in body["user"]
    assert body["artisan"]["business_name"] == "Sita Devi's Workshop"

    res = client.post("/api/auth/login", data={"username": "POTTER@craftmail.in", "password": "secret-pass"})
    assert res.status_code == 200
    login = res.json()
    assert login["token_type"] == "bearer"
    assert login["artisan"]["id"] == body["artisan"]["id"]

    token_headers = {"Authorization": f"Bearer {login['access_token']}"}
    assert client.get("/api/me", headers=token_headers).json()["email"] == "potter@craftmail.in"
    assert client.get("/api/auth/verify", headers=token_headers).json()["valid"] is True
    assert client.get("/api/auth/profile", headers=token_headers).json()["artisan"]["business_name"] == "Sita Devi's Workshop"
    assert client.post("/api/auth/logout", headers=token_headers).json() == {"message": "Logged out successfully"}

    profile = client.put("/api/auth/profile", json={"phone": "12345"}, headers=headers).json()
    assert profile["user"]["phone"] == "12345"


def test_register_duplicate_is_400(client, customer):
    res = client.post("/api/auth/register", json={"name": "Again", "email": "buyer@craftmail.in", "password": "secret-pass"})
    assert res.status_code == 400
    assert res.json() == {"detail": "User already exists with this email"}


def test_login_wrong_password(client, customer):
    res = client.post("/api/auth/login", data={"username": "buyer@craftmail.in", "password": "nope-nope"})
    assert res.status_code == 401


def test_protected_routes_need_token(client):
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_deactivate_blocks_token(client, customer):
    _, headers = customer
    assert client.post("/api/auth/deactivate", headers=headers).status_code == 200
    assert client.get("/api/me", headers=headers).status_code == 401


def test_change_password_flow(client, customer):
    _, headers = customer
    res = client.put("/api/auth/change-password", json={"current_password": "secret-pass", "new_password": "fresh-pass"}, headers=headers)
    assert res.status_code == 200
    assert client.post("/api/auth/login", data={"username": "buyer@craftmail.in", "password": "fresh-pass"}).status_code == 200


def test_product_lifecycle(client, artisan, customer, upload_dir):
    _, artisan_headers = artisan
    _, customer_headers = customer

    res = create_product(client, artisan_headers)
    assert res.status_code == 201, res.text
    product = res.json()["product"]
    assert product["category"]["tags"] == ["bankura", "horse"]
    assert len(product["images"]) == 1
    stored_name = product["images"][0]["url"].rsplit("/", 1)[1]
    assert (upload_dir / "products" / stored_name).exists()

    listing = client.get("/api/products", params={"search": "bankura"}).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == product["id"]

    detail = client.get(f"/api/products/{product['id']}").json()
    assert detail["stats"]["views"] == 1
    assert detail["artisan"]["user"]["name"] == "Sita Devi"

    res = client.put(
        f"/api/products/{product['id']}", data={"base_price": "2000", "specifications": json.dumps({"materials": ["clay"]})},
        headers=artisan_headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["product"]["pricing"]["base_price"] == 2000

    res = client.post(f"/api/products/{product['id']}/reviews", json={"rating": 5, "comment": "Beautiful"}, headers=customer_headers)
    assert res.status_code == 201
    assert res.json()["review"]["user"]["name"] == "Test User"

    res = client.post(f"/api/products/{product['id']}/reviews", json={"rating": 3}, headers=customer_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "You have already reviewed this product"

    res = client.delete(f"/api/products/{product['id']}", headers=artisan_headers)
    assert res.status_code == 200
    assert not (upload_dir / "products" / stored_name).exists()
    assert client.get(f"/api/products/{product['id']}").status_code == 404


def test_customer_cannot_create_product(client, customer):
    _, headers = customer
    res = create_product(client, headers)
    assert res.status_code == 403
    assert res.json() == {"detail": "Artisan access required"}


def test_create_product_validation_removes_uploads(client, artisan, upload_dir):
    _, headers = artisan
    res = create_product(client, headers, category="Spaceships")
    assert res.status_code == 400
    assert "category" in res.json()["detail"]
    products_dir = upload_dir / "products"
    assert not products_dir.exists() or list(products_dir.iterdir()) == []


def test_create_product_rejects_non_image(client, artisan):
    _, headers = artisan
    res = client.post(
        "/api/products",
        data={"title": "Mat", "description": "Jute mat", "category": "Home Decor", "base_price": "400"},
        files=[("images", ("mat.pdf", b"%PDF", "application/pdf"))],
        headers=headers,
    )
    assert res.status_code == 400


def test_other_artisan_cannot_edit(client, artisan):
    _, owner_headers = artisan
    product = create_product(client, owner_headers).json()["product"]
    _, intruder_headers = register(client, "rival@craftmail.in", role="artisan")
    res = client.put(f"/api/products/{product['id']}", data={"title": "Stolen"}, headers=intruder_headers)
    assert res.status_code == 403
    assert client.delete(f"/api/products/{product['id']}", headers=intruder_headers).status_code == 403


def test_listing_bad_page_is_400(client):
    assert client.get("/api/products", params={"page": 0}).status_code == 400
    assert client.get("/api/artisans", params={"limit": 0}).status_code == 400


def test_featured_and_categories_routes(client, artisan):
    _, headers = artisan
    create_product(client, headers)
    assert client.get("/api/products/featured/list").json() == []
    assert client.get("/api/products/categories/list").json() == [{"category": "Pottery & Ceramics", "count": 1}]


def test_artisan_routes(client, artisan):
    body, headers = artisan
    artisan_id = body["artisan"]["id"]
    create_product(client, headers)

    res = client.put(
        "/api/artisans/profile",
        data={
            "bio": "Bankura horse maker",
            "specialization": "Pottery,Sculpture",
            "location": json.dumps({"city": "Bankura", "state": "West Bengal"}),
            "award_titles": ["Shilpa Guru"],
            "award_years": ["2015"],
        },
        files=[
            ("workshop_images", ("kiln.jpg", JPEG, "image/jpeg")),
            ("award_images", ("award.png", b"\x89PNG", "image/png")),
        ],
        headers=headers,
    )
    assert res.status_code == 200, res.text
    updated = res.json()["artisan"]
    assert updated["specialization"] == ["Pottery", "Sculpture"]
    assert updated["location"]["city"] == "Bankura"
    assert len(updated["workshop"]["images"]) == 1
    assert updated["awards"][0]["title"] == "Shilpa Guru"
    assert updated["awards"][0]["year"] == 2015

    profile = client.get(f"/api/artisans/{artisan_id}").json()
    assert profile["stats"]["profile_views"] == 1
    assert len(profile["products"]) == 1

    assert client.get("/api/artisans", params={"city": "bankura"}).json()["total"] == 1
    assert [a["id"] for a in client.get("/api/artisans/search/bengal").json()] == [artisan_id]
    assert client.get("/api/artisans/my/products", headers=headers).json()["total"] == 1
    dash = client.get("/api/artisans/my/dashboard", headers=headers).json()
    assert dash["overall_stats"]["total_products"] == 1


def test_artisan_profile_upload_limit(client, artisan):
    _, headers = artisan
    files = [("award_images", (f"a{i}.jpg", JPEG, "image/jpeg")) for i in range(4)]
    res = client.put("/api/artisans/profile", data={"bio": "x"}, files=files, headers=headers)
    assert res.status_code == 400


def test_artisan_routes_require_artisan(client, customer):
    _, headers = customer
    assert client.get("/api/artisans/my/dashboard", headers=headers).status_code == 403
    assert client.get("/api/artisans/my/dashboard").status_code == 401


def test_unknown_artisan_is_404(client):
    assert client.get("/api/artisans/0123456789abcdef01234567").status_code == 404


def test_content_assist_routes(client, artisan, customer):
    _, headers = artisan
    res = client.post("/api/ai/analyze-product", json={"description": "handmade clay pot", "category": "Pottery & Ceramics"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["analysis"]["price_range"] == {"min": 500, "max": 3000}

    res = client.post("/api/ai/analyze-product", json={}, headers=headers)
    assert res.status_code == 400

    res = client.post("/api/ai/generate-story", json={"product_title": "Clay Pot"}, headers=headers)
    assert res.status_code == 200
    assert "Clay Pot" in res.json()["story"]

    _, customer_headers = customer
    assert client.post("/api/ai/generate-story", json={"product_title": "Clay Pot"}, headers=customer_headers).status_code == 403


def test_out_of_range_rating_is_400(client, artisan, customer):
    _, artisan_headers = artisan
    _, customer_headers = customer
    product = create_product(client, artisan_headers).json()["product"]
    res = client.post(f"/api/products/{product['id']}/reviews", json={"rating": 6}, headers=customer_headers)
    assert res.status_code == 400
    assert isinstance(res.json()["detail"], str)
    assert "rating" in res.json()["detail"]

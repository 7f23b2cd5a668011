from tests.constants import URLs


def test_register_success(client):
    response = client.post(
        URLs.REGISTER,
        json={"username": "alice", "email": "Alice@Example.com", "password": "password123"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["data"]["username"] == "alice"
    assert data["data"]["email"] == "alice@example.com"
    assert data["data"]["roles"] == ["ROLE_USER"]
    assert "id" in data["data"]
    assert "created_at" in data["data"]
    assert "hashed_password" not in data["data"]


def test_register_ignores_requested_roles(client):
    response = client.post(
        URLs.REGISTER,
        json={"username": "mallory", "password": "password123", "roles": ["ROLE_ADMIN"]},
    )
    assert response.status_code == 201
    assert response.json()["data"]["roles"] == ["ROLE_USER"]


def test_register_duplicate_username(client):
    client.post(URLs.REGISTER, json={"username": "alice", "password": "password123"})

    response = client.post(URLs.REGISTER, json={"username": "alice", "password": "password456"})
    assert response.status_code == 400
    assert response.json()["message"] == "Username already exists"


def test_register_duplicate_email(client):
    client.post(
        URLs.REGISTER,
        json={"username": "alice", "email": "shared@example.com", "password": "password123"},
    )

    response = client.post(
        URLs.REGISTER,
        json={"username": "alice2", "email": "shared@example.com", "password": "password123"},
    )
    assert response.status_code == 400


def test_register_invalid_password_too_short(client):
    response = client.post(URLs.REGISTER, json={"username": "alice", "password": "short1"})
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


def test_register_password_without_digit(client):
    response = client.post(URLs.REGISTER, json={"username": "alice", "password": "onlyletters"})
    assert response.status_code == 400


def test_register_invalid_username(client):
    response = client.post(URLs.REGISTER, json={"username": "a b", "password": "password123"})
    assert response.status_code == 400


def test_register_invalid_email_format(client):
    response = client.post(
        URLs.REGISTER,
        json={"username": "alice", "email": "invalid-email", "password": "password123"},
    )
    assert response.status_code == 400


# Login tests


def test_login_success(client):
    client.post(URLs.REGISTER, json={"username": "alice", "password": "password123"})

    response = client.post(URLs.LOGIN, json={"username": "alice", "password": "password123"})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"]["token"]
    assert data["data"]["token_type"] == "bearer"
    assert data["data"]["username"] == "alice"


def test_login_wrong_password(client):
    client.post(URLs.REGISTER, json={"username": "alice", "password": "password123"})

    response = client.post(URLs.LOGIN, json={"username": "alice", "password": "wrongpass1"})
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


def test_login_unknown_user(client):
    response = client.post(URLs.LOGIN, json={"username": "nobody", "password": "password123"})
    assert response.status_code == 401


def test_login_inactive_user(client, db, test_user):
    test_user.is_active = False
    db.commit()

    response = client.post(URLs.LOGIN, json={"username": "alice", "password": "password123"})
    assert response.status_code == 403

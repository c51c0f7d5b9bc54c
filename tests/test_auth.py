from models import AuditLog, User


def test_register_then_login(client):
    response = client.post(
        "/api/auth/register",
        json={"email": "New@Example.com ", "password": "secret1", "name": "Nouvelle"},
    )
    assert response.status_code == 200
    assert response.get_json()["user"]["email"] == "new@example.com"

    response = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret1"})
    assert response.status_code == 200
    assert response.get_json()["user"]["name"] == "Nouvelle"
    assert client.get("/api/auth/me").get_json()["user"]["email"] == "new@example.com"


def test_register_duplicate_email(client, create_user):
    create_user(email="taken@example.com")
    response = client.post("/api/auth/register", json={"email": "TAKEN@example.com", "password": "secret1"})
    assert response.status_code == 409
    assert response.get_json()["error"] == "email_taken"


def test_register_rejects_short_password(client):
    response = client.post("/api/auth/register", json={"email": "a@example.com", "password": "123"})
    assert response.status_code == 400
    assert response.get_json()["field"] == "password"
    assert User.query.count() == 0


def test_login_with_wrong_password(client, create_user):
    user, _password = create_user()
    response = client.post("/api/auth/login", json={"email": user.email, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_credentials"


def test_logout_ends_session(client, create_user, login):
    user, password = create_user()
    login(user.email, password)

    assert client.post("/api/auth/logout").get_json() == {"ok": True}
    assert client.get("/api/auth/me").status_code == 401
    actions = [entry.action for entry in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["login", "logout"]

"""Tests for the registration, login, logout and refresh endpoints."""

from models.users import User
from security.helpers import create_refresh_token, verify_password

from conftest import PNG_BYTES, USER_PASSWORD

REGISTER_URL = "/api/v1/users/register"
LOGIN_URL = "/api/v1/users/login"
LOGOUT_URL = "/api/v1/users/logout"
REFRESH_URL = "/api/v1/users/refresh-token"
CURRENT_USER_URL = "/api/v1/users/current-user"


async def _login(client, username="alice", password=USER_PASSWORD):
    return await client.post(LOGIN_URL, json={"username": username, "password": password})


class TestRegister:
    """Tests for POST /users/register."""

    async def test_register_returns_sanitized_user(self, register_user, uploads):
        response = await register_user(
            username="alice", email="a@x.com", password="secret123", full_name="Alice A"
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["status"] == 201
        assert body["data"]["username"] == "alice"
        assert body["data"]["fullName"] == "Alice A"
        assert body["data"]["avatar"].startswith("https://")
        assert body["data"]["coverImage"] == ""
        assert "password" not in body["data"]
        assert "refreshToken" not in body["data"]
        assert "refresh_token" not in body["data"]
        assert uploads == [{"filename": "avatar.png", "resource_type": "image"}]

    async def test_password_is_stored_hashed(self, register_user):
        await register_user()

        user = await User.find_one(User.username == "alice")

        assert user.password != USER_PASSWORD
        assert verify_password(USER_PASSWORD, user.password)
        assert user.refresh_token is None

    async def test_username_is_lowercased(self, register_user):
        response = await register_user(username="AliceA")

        assert response.status_code == 201
        assert response.json()["data"]["username"] == "alicea"

    async def test_cover_image_is_uploaded_when_given(self, register_user, uploads):
        response = await register_user(with_cover_image=True)

        assert response.status_code == 201
        assert response.json()["data"]["coverImage"].endswith("cover.png")
        assert len(uploads) == 2

    async def test_duplicate_username_conflicts(self, register_user):
        await register_user(username="alice", email="alice@videotube.io")

        response = await register_user(username="alice", email="other@videotube.io", full_name="Other")

        assert response.status_code == 409
        assert response.json() == {
            "status": 409,
            "message": "User with email or username already exists",
            "success": False,
        }

    async def test_duplicate_email_conflicts(self, register_user):
        await register_user(username="alice", email="alice@videotube.io")

        response = await register_user(username="bob", email="alice@videotube.io")

        assert response.status_code == 409

    async def test_email_differing_only_in_case_conflicts(self, register_user):
        await register_user(username="alice", email="Alice@videotube.io")

        response = await register_user(username="bob", email="alice@videotube.io")

        assert response.status_code == 409
        assert await User.find_all().count() == 1

    async def test_email_is_stored_lowercased(self, register_user):
        response = await register_user(email="Alice.A@VideoTube.io")

        assert response.json()["data"]["email"] == "alice.a@videotube.io"

    async def test_username_too_short_after_stripping_is_rejected(self, register_user, uploads):
        response = await register_user(username="  ab  ")

        assert response.status_code == 400
        assert await User.find_all().count() == 0
        assert uploads == []

    async def test_username_is_stripped(self, register_user):
        response = await register_user(username="  alice  ")

        assert response.status_code == 201
        assert response.json()["data"]["username"] == "alice"

    async def test_missing_avatar_is_rejected(self, register_user):
        response = await register_user(with_avatar=False)

        assert response.status_code == 400
        assert response.json()["message"] == "Avatar file is required"
        assert await User.find_one(User.username == "alice") is None

    async def test_avatar_must_be_an_image(self, client, uploads):
        response = await client.post(
            REGISTER_URL,
            data={"fullName": "Alice A", "email": "alice@videotube.io", "username": "alice", "password": USER_PASSWORD},
            files={"avatar": ("avatar.png", b"definitely not an image", "image/png")},
        )

        assert response.status_code == 400
        assert "Invalid avatar file type" in response.json()["message"]
        assert uploads == []

    async def test_missing_field_is_a_validation_error(self, client, uploads):
        response = await client.post(
            REGISTER_URL,
            data={"email": "alice@videotube.io", "username": "alice", "password": USER_PASSWORD},
            files={"avatar": ("avatar.png", PNG_BYTES, "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_failed_upload_is_an_internal_error(self, register_user, monkeypatch):
        from routers import users as users_router

        async def failing_upload(file, settings, resource_type="image"):
            return 503, None

        monkeypatch.setattr(users_router, "upload_file_to_cloudinary", failing_upload)

        response = await register_user()

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to upload avatar"


class TestLogin:
    """Tests for POST /users/login."""

    async def test_login_issues_and_persists_tokens(self, client, register_user):
        await register_user()

        response = await _login(client)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["username"] == "alice"
        assert "password" not in data["user"]
        assert data["accessToken"]
        assert data["refreshToken"]

        user = await User.find_one(User.username == "alice")
        assert user.refresh_token == data["refreshToken"]

    async def test_login_sets_secure_http_only_cookies(self, client, register_user):
        await register_user()

        response = await _login(client)

        set_cookies = response.headers.get_list("set-cookie")
        assert len(set_cookies) == 2
        for name, header in zip(("accessToken", "refreshToken"), set_cookies):
            assert header.startswith(f"{name}=")
            assert "HttpOnly" in header
            assert "Secure" in header

    async def test_login_with_email(self, client, register_user):
        await register_user(email="alice@videotube.io")

        response = await client.post(
            LOGIN_URL, json={"email": "alice@videotube.io", "password": USER_PASSWORD}
        )

        assert response.status_code == 200

    async def test_login_email_ignores_case(self, client, register_user):
        await register_user(email="alice@videotube.io")

        response = await client.post(
            LOGIN_URL, json={"email": "ALICE@videotube.io", "password": USER_PASSWORD}
        )

        assert response.status_code == 200

    async def test_wrong_password_is_unauthorized_and_persists_nothing(self, client, register_user):
        await register_user()

        response = await _login(client, password="wrong-password")

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert "set-cookie" not in response.headers

        user = await User.find_one(User.username == "alice")
        assert user.refresh_token is None

    async def test_unknown_user_is_not_found(self, client, db):
        response = await _login(client, username="nobody")

        assert response.status_code == 404
        assert response.json()["message"] == "User does not exist"

    async def test_username_or_email_is_required(self, client, db):
        response = await client.post(LOGIN_URL, json={"password": USER_PASSWORD})

        assert response.status_code == 400

    async def test_second_login_invalidates_first_session(self, client, register_user):
        await register_user()
        first = (await _login(client)).json()["data"]["refreshToken"]
        await _login(client)
        client.cookies.clear()

        response = await client.post(REFRESH_URL, json={"refreshToken": first})

        assert response.status_code == 401


class TestRefreshToken:
    """Tests for POST /users/refresh-token."""

    async def test_refresh_rotates_tokens(self, client, register_user):
        await register_user()
        old_refresh = (await _login(client)).json()["data"]["refreshToken"]
        client.cookies.clear()

        response = await client.post(REFRESH_URL, json={"refreshToken": old_refresh})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["accessToken"]
        assert data["refreshToken"] != old_refresh

        user = await User.find_one(User.username == "alice")
        assert user.refresh_token == data["refreshToken"]

        set_cookies = response.headers.get_list("set-cookie")
        assert any(header.startswith("refreshToken=") and "HttpOnly" in header for header in set_cookies)

    async def test_superseded_refresh_token_is_rejected(self, client, register_user):
        await register_user()
        old_refresh = (await _login(client)).json()["data"]["refreshToken"]
        client.cookies.clear()

        first = await client.post(REFRESH_URL, json={"refreshToken": old_refresh})
        client.cookies.clear()
        second = await client.post(REFRESH_URL, json={"refreshToken": old_refresh})

        assert first.status_code == 200
        assert second.status_code == 401
        assert second.json()["message"] == "Refresh token is expired or used"

    async def test_refresh_reads_token_from_cookie(self, client, register_user):
        await register_user()
        await _login(client)

        response = await client.post(REFRESH_URL)

        assert response.status_code == 200
        assert client.cookies.get("refreshToken") == response.json()["data"]["refreshToken"]

    async def test_validly_signed_but_unpersisted_token_is_rejected(self, client, register_user, settings):
        await register_user()
        await _login(client)
        client.cookies.clear()
        user = await User.find_one(User.username == "alice")
        forged = create_refresh_token(user, settings)

        response = await client.post(REFRESH_URL, json={"refreshToken": forged})

        assert response.status_code == 401
        assert response.json()["message"] == "Refresh token is expired or used"

    async def test_missing_token_is_unauthorized(self, client, db):
        response = await client.post(REFRESH_URL)

        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized request"

    async def test_tampered_token_surfaces_verification_error(self, client, db):
        response = await client.post(REFRESH_URL, json={"refreshToken": "not.a.jwt"})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["message"]


class TestLogout:
    """Tests for POST /users/logout."""

    async def test_logout_clears_refresh_token(self, client, register_user):
        await register_user()
        refresh_token = (await _login(client)).json()["data"]["refreshToken"]

        response = await client.post(LOGOUT_URL)

        assert response.status_code == 200
        assert response.json()["data"] == {}
        user = await User.find_one(User.username == "alice")
        assert user.refresh_token is None

        client.cookies.clear()
        refreshed = await client.post(REFRESH_URL, json={"refreshToken": refresh_token})
        assert refreshed.status_code == 401

    async def test_logout_expires_cookies(self, client, register_user):
        await register_user()
        await _login(client)

        response = await client.post(LOGOUT_URL)

        set_cookies = response.headers.get_list("set-cookie")
        assert sorted(header.split("=", 1)[0] for header in set_cookies) == ["accessToken", "refreshToken"]
        assert all("Max-Age=0" in header for header in set_cookies)
        assert "accessToken" not in client.cookies
        assert "refreshToken" not in client.cookies

    async def test_logout_requires_authentication(self, client, db):
        response = await client.post(LOGOUT_URL)

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


class TestAuthenticationGuard:
    """Tests for the access token check shared by protected endpoints."""

    async def test_cookie_authenticates(self, client, register_user):
        await register_user()
        await _login(client)

        response = await client.get(CURRENT_USER_URL)

        assert response.status_code == 200
        assert response.json()["data"]["username"] == "alice"
        assert "password" not in response.json()["data"]

    async def test_bearer_header_authenticates(self, client, login_headers):
        headers = await login_headers("alice")

        response = await client.get(CURRENT_USER_URL, headers=headers)

        assert response.status_code == 200

    async def test_invalid_token_is_rejected(self, client, db):
        response = await client.get(CURRENT_USER_URL, headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json() == {"status": 401, "message": "Invalid access token", "success": False}

    async def test_refresh_token_is_not_an_access_token(self, client, register_user):
        await register_user()
        refresh_token = (await _login(client)).json()["data"]["refreshToken"]
        client.cookies.clear()

        response = await client.get(CURRENT_USER_URL, headers={"Authorization": f"Bearer {refresh_token}"})

        assert response.status_code == 401

    async def test_token_of_deleted_user_is_rejected(self, client, login_headers):
        headers = await login_headers("alice")
        user = await User.find_one(User.username == "alice")
        await user.delete()

        response = await client.get(CURRENT_USER_URL, headers=headers)

        assert response.status_code == 401

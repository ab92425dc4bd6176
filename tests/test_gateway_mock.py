from __future__ import annotations

import unittest
from typing import Any

from civicmesh_sync.commands import CreatePostRequest, ResolvePostRequest, SignupRequest
from civicmesh_sync.gateway import BackendGateway
from civicmesh_sync.offline import MockBackend
from civicmesh_sync.results import GatewayResult


def _mock_gateway() -> tuple[BackendGateway, MockBackend]:
    mock = MockBackend(sleep_fn=lambda s: None)
    return BackendGateway(live=None, mock=mock, use_mock=True), mock


def _create_request(**overrides: Any) -> CreatePostRequest:
    fields: dict[str, Any] = {
        "title": "Need food",
        "category": "help",
        "subcategory": "food",
        "description": "Family of four",
        "latitude": 12.34,
        "longitude": 56.78,
        "photo_uri": "file:///tmp/a.jpg",
    }
    fields.update(overrides)
    return CreatePostRequest(**fields)


class _SpyBackend:
    """Records every backend call; any call is a test failure for validation paths."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __getattr__(self, name: str) -> Any:
        def _record(*args: Any, **kwargs: Any) -> GatewayResult[Any]:
            self.calls.append(name)
            return GatewayResult.failure("spy", kind="server")

        return _record


class _ExplodingBackend:
    def list_posts(self) -> GatewayResult[Any]:
        raise RuntimeError("socket closed")


class TestMockGateway(unittest.TestCase):
    def test_list_returns_fixture_posts_newest_first(self) -> None:
        gateway, _ = _mock_gateway()
        result = gateway.list_posts()

        self.assertTrue(result.ok)
        assert result.data is not None
        self.assertEqual([p.id for p in result.data], ["post-5", "post-2", "post-1", "post-3", "post-4"])
        self.assertEqual(result.data[1].on_my_way_by, ("user-3",))
        self.assertFalse(result.data[-1].is_active)

    def test_create_returns_new_active_post(self) -> None:
        gateway, mock = _mock_gateway()
        result = gateway.create_post(_create_request())

        self.assertTrue(result.ok)
        post = result.data
        assert post is not None
        self.assertTrue(post.id.startswith("post-"))
        self.assertEqual(post.title, "Need food")
        self.assertEqual(post.category, "help")
        self.assertEqual(post.subcategory, "food")
        self.assertEqual(post.on_my_way_by, ())
        self.assertTrue(post.is_active)
        self.assertEqual(post.photo_uri, "file:///tmp/a.jpg")
        self.assertEqual(post.user_id, "mock-user")
        self.assertEqual(post.created_at, post.updated_at)
        self.assertIn(post, mock.snapshot())

        listed = gateway.list_posts().unwrap()
        self.assertEqual(listed[0].id, post.id)

    def test_create_accepts_zero_coordinates(self) -> None:
        gateway, _ = _mock_gateway()
        self.assertTrue(gateway.create_post(_create_request(latitude=0.0, longitude=0.0)).ok)

    def test_create_validation_messages(self) -> None:
        gateway, _ = _mock_gateway()
        cases = [
            ({"title": "  "}, "All fields are required"),
            ({"latitude": None}, "Location is required"),
            ({"longitude": float("nan")}, "Location is required"),
            ({"photo_uri": ""}, "Photo is required"),
        ]
        for overrides, message in cases:
            with self.subTest(overrides=overrides):
                result = gateway.create_post(_create_request(**overrides))
                self.assertFalse(result.ok)
                self.assertEqual(result.kind, "validation")
                self.assertEqual(result.error, message)

    def test_create_rejects_subcategory_from_another_category(self) -> None:
        gateway, _ = _mock_gateway()
        result = gateway.create_post(_create_request(subcategory="fire"))
        self.assertEqual(result.kind, "validation")

    def test_resolve_without_photo_never_reaches_backend(self) -> None:
        spy = _SpyBackend()
        gateway = BackendGateway(live=spy, mock=spy, use_mock=False)  # type: ignore[arg-type]

        result = gateway.resolve_post(
            ResolvePostRequest(
                post_id="post-1",
                user_id="user-1",
                resolution_code="FIXED",
                resolution_photo_uri="",
            )
        )

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, "validation")
        self.assertEqual(result.error, "Resolution photo is required")
        self.assertEqual(spy.calls, [])

    def test_resolve_requires_code(self) -> None:
        gateway, _ = _mock_gateway()
        result = gateway.resolve_post(
            ResolvePostRequest(
                post_id="post-1",
                user_id="user-1",
                resolution_code=" ",
                resolution_photo_uri="file:///tmp/r.jpg",
            )
        )
        self.assertEqual(result.error, "Resolution code is required")

    def test_resolve_marks_post_inactive(self) -> None:
        gateway, _ = _mock_gateway()
        before = gateway.fetch_post("post-1").unwrap()
        result = gateway.resolve_post(
            ResolvePostRequest(
                post_id="post-1",
                user_id="user-3",
                resolution_code="REOPENED",
                resolution_photo_uri="file:///tmp/r.jpg",
            )
        )

        post = result.unwrap()
        self.assertFalse(post.is_active)
        assert post.resolution is not None
        self.assertEqual(post.resolution.resolved_by, "user-3")
        self.assertEqual(post.resolution.photo_uri, "file:///tmp/r.jpg")
        self.assertIsNotNone(post.resolution.resolved_at)
        self.assertEqual(post.updated_at, before.updated_at)
        self.assertEqual(post.photo_uri, before.photo_uri)

    def test_on_my_way_is_idempotent(self) -> None:
        gateway, _ = _mock_gateway()
        first = gateway.mark_on_my_way("post-1", "user-9").unwrap()
        second = gateway.mark_on_my_way("post-1", "user-9").unwrap()

        self.assertEqual(first.on_my_way_by, ("user-9",))
        self.assertEqual(second.on_my_way_by, ("user-9",))

    def test_unknown_post_is_not_found(self) -> None:
        gateway, _ = _mock_gateway()
        for result in (
            gateway.fetch_post("post-404"),
            gateway.mark_on_my_way("post-404", "user-1"),
        ):
            self.assertFalse(result.ok)
            self.assertEqual(result.kind, "not_found")
            self.assertEqual(result.error, "Post not found")

    def test_login_and_signup(self) -> None:
        gateway, _ = _mock_gateway()

        session = gateway.login("ADA@example.com", "password123").unwrap()
        self.assertEqual(session.user.id, "user-1")
        self.assertTrue(session.token.startswith("mock-jwt-token-"))

        bad = gateway.login("ada@example.com", "wrong")
        self.assertEqual(bad.error, "Invalid email or password")

        dup = gateway.signup(SignupRequest(email="ada@example.com", password="x", first_name="A", last_name="O"))
        self.assertEqual(dup.error, "Email already exists")

        created = gateway.signup(
            SignupRequest(email="dee@example.com", password="pw", first_name="Dee", last_name="Ng")
        ).unwrap()
        self.assertTrue(created.user.id.startswith("mock-user-"))
        self.assertTrue(gateway.login("dee@example.com", "pw").ok)

    def test_mode_flag_is_read_on_every_call(self) -> None:
        spy = _SpyBackend()
        mock = MockBackend(sleep_fn=lambda s: None)
        flag = {"mock": True}
        gateway = BackendGateway(live=spy, mock=mock, use_mock=lambda: flag["mock"])  # type: ignore[arg-type]

        self.assertTrue(gateway.list_posts().ok)
        flag["mock"] = False
        self.assertFalse(gateway.list_posts().ok)
        self.assertEqual(spy.calls, ["list_posts"])

    def test_backend_exceptions_become_network_failures(self) -> None:
        gateway = BackendGateway(live=_ExplodingBackend(), mock=None)  # type: ignore[arg-type]
        result = gateway.list_posts()

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, "network")
        self.assertEqual(result.error, "socket closed")

    def test_missing_backend_for_mode_is_a_failure(self) -> None:
        gateway = BackendGateway(live=None, mock=None, use_mock=True)
        self.assertFalse(gateway.list_posts().ok)

    def test_empty_seed_is_kept_and_never_replaced_by_fixtures(self) -> None:
        mock = MockBackend(
            posts=[],
            users=[],
            posts_fixture="/nonexistent/posts.json",
            users_fixture="/nonexistent/users.json",
            sleep_fn=lambda s: None,
        )
        gateway = BackendGateway(live=None, mock=mock, use_mock=True)

        self.assertEqual(gateway.list_posts().unwrap(), [])
        created = gateway.create_post(_create_request()).unwrap()
        self.assertEqual([p.id for p in gateway.list_posts().unwrap()], [created.id])


if __name__ == "__main__":
    unittest.main()

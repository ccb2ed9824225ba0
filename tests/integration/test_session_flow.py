"""
Integration tests for identity session changes on a live access layer.
"""

import pytest

from mocks.recipes.server import MockRecipeServer
from recipe_client.app.caching import keys
from recipe_client.app.main import create_access_layer
from shared.config import ClientConfig
from shared.errors import ConfigurationError, HttpError
from shared.test_helpers import MockDataFactory, asgi_transport, create_test_config, make_token_getter


class TestSessionFlow:
    """Sign-in, sign-out and session replacement."""

    @pytest.fixture
    def users(self):
        return MockDataFactory.create_users()

    @pytest.fixture
    def server(self, users):
        server = MockRecipeServer()
        for user in users:
            server.register_user(user.user_id, user.email, user.token)
            server.add_recipe(user.user_id, f"{user.user_id} soup")
        return server

    @pytest.fixture
    def layer(self, server):
        return create_access_layer(
            create_test_config(),
            transport=asgi_transport(server.app),
            configure_logs=False,
        )

    @pytest.mark.asyncio
    async def test_sign_out_clears_credential_and_cache(self, server, users, layer):
        owner = users[0]
        async with layer:
            layer.sign_in(make_token_getter(owner.token), owner.session_id, user_id=owner.user_id)
            mine = await layer.recipes.my_recipes()
            assert [recipe.owner_id for recipe in mine] == [owner.user_id]

            assert layer.sign_out(owner.session_id) is True
            assert layer.cache.read(keys.recipes_mine()) is None

            with pytest.raises(HttpError) as exc_info:
                await layer.recipes.my_recipes()

        assert exc_info.value.status == 401
        assert server.requests[-1][2] is None

    @pytest.mark.asyncio
    async def test_late_sign_out_of_replaced_session_is_ignored(self, server, users, layer):
        """Signing out an old session must not drop the newer session's credential."""
        first, second = users[0], users[1]
        async with layer:
            layer.sign_in(make_token_getter(first.token), first.session_id)
            layer.sign_in(make_token_getter(second.token), second.session_id)

            assert layer.sign_out(first.session_id) is False
            mine = await layer.recipes.my_recipes()

        assert [recipe.owner_id for recipe in mine] == [second.user_id]
        assert server.requests[-1][2] == f"Bearer {second.token}"

    @pytest.mark.asyncio
    async def test_close_waits_for_pending_writes(self, server, users, layer):
        owner = users[0]
        layer.sign_in(make_token_getter(owner.token), owner.session_id)
        draft = await layer.recipes.generate_recipe(["lentil"])
        await layer.recipes.save_recipe(draft)

        await layer.aclose()

        assert layer.coordinator.pending == 0
        assert len([r for r in server.recipes.values() if r["ownerId"] == owner.user_id]) == 2

    def test_missing_publishable_key_fails_fast(self, server):
        config = ClientConfig(api_url="http://testserver", _env_file=None)

        with pytest.raises(ConfigurationError):
            create_access_layer(config, transport=asgi_transport(server.app), configure_logs=False)

"""Shared pytest fixtures for staydesk tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_jwk_client():
    """Reset the module-level JWKS client between tests.

    The client caches signing keys; a key set cached by one test would not
    match the keys another test signs with.
    """
    import staydesk.api.auth as auth_module

    auth_module._jwk_client = None
    auth_module._jwk_client_url = None
    yield
    auth_module._jwk_client = None
    auth_module._jwk_client_url = None
